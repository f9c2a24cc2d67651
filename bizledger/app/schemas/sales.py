from __future__ import annotations

from pydantic import BaseModel

from bizledger.app.schemas.reports import Period


class InvoiceSalesFigures(BaseModel):
    invoice_count: int
    total_sales: str
    total_paid: str
    total_balance_due: str


class CustomerSalesRow(InvoiceSalesFigures):
    customer_id: str | None = None
    customer_name: str


class CustomerSalesResponse(BaseModel):
    period: Period
    rows: list[CustomerSalesRow]
    totals: InvoiceSalesFigures


class EmployeeSalesRow(InvoiceSalesFigures):
    employee_id: str | None = None
    employee_name: str


class EmployeeSalesResponse(BaseModel):
    period: Period
    rows: list[EmployeeSalesRow]
    totals: InvoiceSalesFigures


class ProductSalesFigures(BaseModel):
    quantity_sold: int
    total_sales: str
    total_cost: str
    gross_profit: str


class ProductSalesRow(ProductSalesFigures):
    product_id: str | None = None
    product_name: str


class ProductSalesResponse(BaseModel):
    period: Period
    rows: list[ProductSalesRow]
    totals: ProductSalesFigures


class IncomeFigures(BaseModel):
    payment_count: int
    total_received: str


class CustomerIncomeRow(IncomeFigures):
    customer_id: str | None = None
    customer_name: str


class CustomerIncomeResponse(BaseModel):
    period: Period
    rows: list[CustomerIncomeRow]
    totals: IncomeFigures


# ── Detail ───────────────────────────────────────────────────────────────────

class InvoiceDetailFigures(BaseModel):
    invoice_id: str
    invoice_number: str
    invoice_date: str
    due_date: str | None = None
    status: str
    total_sales: str
    total_paid: str
    total_balance_due: str


class CustomerSalesDetailRow(InvoiceDetailFigures):
    customer_id: str | None = None
    customer_name: str


class CustomerSalesDetailResponse(BaseModel):
    period: Period
    rows: list[CustomerSalesDetailRow]
    totals: InvoiceSalesFigures


class EmployeeSalesDetailRow(InvoiceDetailFigures):
    employee_id: str | None = None
    employee_name: str


class EmployeeSalesDetailResponse(BaseModel):
    period: Period
    rows: list[EmployeeSalesDetailRow]
    totals: InvoiceSalesFigures


class ProductSalesDetailRow(ProductSalesFigures):
    invoice_id: str
    invoice_number: str
    invoice_date: str
    customer_name: str | None = None
    product_id: str | None = None
    product_name: str
    description: str | None = None
    unit_price: str
    cost_price: str


class ProductSalesDetailResponse(BaseModel):
    period: Period
    rows: list[ProductSalesDetailRow]
    totals: ProductSalesFigures
