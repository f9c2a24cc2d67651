"""Sales commission per employee.

Commission on an invoice line is ``quantity × product.commission`` and is
credited to whichever employee the attribution policy names. The default
policy credits the employee who registered the product, which is how the
business has always paid commission. It is not necessarily the salesperson
on the invoice.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from bizledger.app.core.errors import NotFoundError, ValidationError
from bizledger.app.models.inventory import Product
from bizledger.app.models.invoice import Invoice
from bizledger.app.services import assembler, ledger
from bizledger.app.services.periods import DateWindow, resolve_window

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

AttributionPolicy = Callable[[Product, Invoice], "UUID | None"]


def attribution_employee(product: Product, invoice: Invoice) -> UUID | None:
    """Default policy: the employee who added the product earns its commission."""
    return product.added_employee_id


def invoice_salesperson(product: Product, invoice: Invoice) -> UUID | None:
    """Alternative policy: the employee recorded on the invoice."""
    return invoice.employee_id


def _commission_lines(
    db: Session,
    company_id: UUID | None,
    window: DateWindow,
    policy: AttributionPolicy,
) -> dict[UUID, list[dict]]:
    by_employee: dict[UUID, list[dict]] = {}
    rows = ledger.commission_lines(db, company_id, window)
    for item, invoice, product, customer_name, company_name in rows:
        employee_id = policy(product, invoice)
        if employee_id is None:
            continue
        per_unit = ledger.to_decimal(product.commission)
        by_employee.setdefault(employee_id, []).append({
            "invoice_id": invoice.id,
            "invoice_number": invoice.invoice_number,
            "invoice_date": invoice.invoice_date.isoformat(),
            "company_id": invoice.company_id,
            "company_name": company_name,
            "customer_name": customer_name,
            "product_id": product.id,
            "product_name": product.name,
            "quantity": item.quantity,
            "commission_per_unit": per_unit,
            "line_commission": per_unit * (item.quantity or 0),
        })
    return by_employee


def compute_commission_report(
    db: Session,
    company_id: UUID | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    policy: AttributionPolicy = attribution_employee,
) -> dict:
    """One row per active employee, including those who earned nothing."""
    window = resolve_window(start_date, end_date, default="all_time")
    lines = _commission_lines(db, company_id, window, policy)

    rows = []
    grand_total = ZERO
    for emp in ledger.active_employees(db, company_id):
        emp_lines = lines.get(emp.id, [])
        total = sum((line["line_commission"] for line in emp_lines), ZERO)
        grand_total += total
        rows.append({
            "employee_id": emp.id,
            "employee_name": emp.name,
            "email": emp.email,
            "line_count": len(emp_lines),
            "total_commission": total,
        })

    logger.info("Commission report computed: %d employees", len(rows))
    return assembler.render({
        "period": window.as_period(),
        "employees": rows,
        "total_commission": grand_total,
    })


def compute_commission_detail(
    db: Session,
    employee_id: UUID | None,
    start_date: date | None = None,
    end_date: date | None = None,
    company_id: UUID | None = None,
    policy: AttributionPolicy = attribution_employee,
) -> dict:
    """Every invoice line that contributed to an employee's commission."""
    if employee_id is None:
        raise ValidationError("Employee ID is required")
    window = resolve_window(start_date, end_date, default="all_time")

    employee = ledger.get_employee(db, employee_id)
    if employee is None or not employee.is_active:
        raise NotFoundError("Employee not found")
    if company_id is not None and employee.company_id != company_id:
        raise NotFoundError("Employee not found")

    lines = _commission_lines(db, company_id, window, policy).get(employee_id, [])
    total = sum((line["line_commission"] for line in lines), ZERO)

    return assembler.render({
        "employee": {
            "id": employee.id,
            "name": employee.name,
            "email": employee.email,
        },
        "period": window.as_period(),
        "total_commission": total,
        "invoice_lines": lines,
    })
