"""Import every model so relationship strings resolve and metadata is complete."""

from bizledger.app.models.company import Company
from bizledger.app.models.customer import Customer, Employee
from bizledger.app.models.inventory import Product
from bizledger.app.models.invoice import Invoice, InvoiceItem, InvoiceStatus, Payment

__all__ = [
    "Company",
    "Customer",
    "Employee",
    "Product",
    "Invoice",
    "InvoiceItem",
    "InvoiceStatus",
    "Payment",
]
