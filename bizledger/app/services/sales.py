from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from bizledger.app.core.errors import ValidationError
from bizledger.app.services import assembler, ledger
from bizledger.app.services.ledger import GroupBy, InvoiceTotals, LineTotals, ReportQuery
from bizledger.app.services.periods import resolve_window

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

INVOICE_FIELDS = ("total_sales", "total_paid", "total_balance_due")
PRODUCT_FIELDS = ("total_sales", "total_cost", "gross_profit")


def _query(
    company_id: UUID,
    start_date: date | None,
    end_date: date | None,
    group_by: GroupBy | None,
    today: date | None,
    customer_id: UUID | None = None,
    employee_id: UUID | None = None,
) -> ReportQuery:
    if company_id is None:
        raise ValidationError("Company ID is required")
    window = resolve_window(start_date, end_date, today=today)
    return ReportQuery(
        company_id=company_id,
        window=window,
        group_by=group_by,
        customer_id=customer_id,
        employee_id=employee_id,
    )


def _invoice_row(totals: InvoiceTotals) -> dict[str, object]:
    return {
        "invoice_count": totals.invoice_count,
        "total_sales": totals.total_amount,
        "total_paid": totals.paid_amount,
        "total_balance_due": totals.balance_due,
    }


def _by_member(
    db: Session, q: ReportQuery, labels: dict[UUID, str], id_field: str, name_field: str,
) -> dict:
    grouped = ledger.invoice_totals(db, q)

    rows = []
    unassigned = InvoiceTotals()
    for key, totals in grouped.items():
        if key not in labels:
            unassigned = unassigned + totals
    for member_id in sorted(labels, key=lambda k: assembler.sort_key(labels[k], k)):
        rows.append({
            id_field: member_id,
            name_field: labels[member_id],
            **_invoice_row(grouped.get(member_id, InvoiceTotals())),
        })
    if unassigned.invoice_count:
        rows.append({id_field: None, name_field: assembler.UNASSIGNED, **_invoice_row(unassigned)})

    totals = assembler.totals_row(rows, INVOICE_FIELDS)
    totals["invoice_count"] = sum(r["invoice_count"] for r in rows)  # type: ignore[assignment]
    return assembler.render({
        "period": q.window.as_period(),
        "rows": rows,
        "totals": totals,
    })  # type: ignore[return-value]


# ── Public API ───────────────────────────────────────────────────────────────


def sales_by_customer_summary(
    db: Session,
    company_id: UUID,
    start_date: date | None = None,
    end_date: date | None = None,
    today: date | None = None,
) -> dict:
    """Invoiced sales per active customer; customers without sales show zeros."""
    q = _query(company_id, start_date, end_date, GroupBy.CUSTOMER, today)
    labels = ledger.active_customers(db, company_id)
    return _by_member(db, q, labels, "customer_id", "customer_name")


def sales_by_employee_summary(
    db: Session,
    company_id: UUID,
    start_date: date | None = None,
    end_date: date | None = None,
    today: date | None = None,
) -> dict:
    q = _query(company_id, start_date, end_date, GroupBy.EMPLOYEE, today)
    labels = {e.id: e.name for e in ledger.active_employees(db, company_id)}
    return _by_member(db, q, labels, "employee_id", "employee_name")


def sales_by_product_summary(
    db: Session,
    company_id: UUID,
    start_date: date | None = None,
    end_date: date | None = None,
    today: date | None = None,
) -> dict:
    """Units sold, revenue and cost per product that had sales in the window."""
    q = _query(company_id, start_date, end_date, GroupBy.PRODUCT, today)
    grouped = ledger.line_totals(db, q)
    names = ledger.product_names(db, company_id)

    rows = []
    for product_id in sorted(grouped, key=lambda k: assembler.sort_key(names.get(k), k)):
        t: LineTotals = grouped[product_id]
        rows.append({
            "product_id": product_id,
            "product_name": names.get(product_id, assembler.UNASSIGNED),
            "quantity_sold": int(t.quantity),
            "total_sales": t.product_income,
            "total_cost": t.cost_of_sales,
            "gross_profit": t.product_income - t.cost_of_sales,
        })

    totals = assembler.totals_row(rows, PRODUCT_FIELDS)
    totals["quantity_sold"] = sum(r["quantity_sold"] for r in rows)  # type: ignore[assignment]
    return assembler.render({
        "period": q.window.as_period(),
        "rows": rows,
        "totals": totals,
    })  # type: ignore[return-value]


def income_by_customer_summary(
    db: Session,
    company_id: UUID,
    start_date: date | None = None,
    end_date: date | None = None,
    today: date | None = None,
) -> dict:
    """Cash received per customer, by payment date."""
    q = _query(company_id, start_date, end_date, GroupBy.CUSTOMER, today)
    received = ledger.payment_totals(db, q)
    labels = ledger.active_customers(db, company_id)

    rows = []
    unassigned_amount, unassigned_count = ZERO, 0
    for key, (amount, count) in received.items():
        if key not in labels:
            unassigned_amount += amount
            unassigned_count += count
    for customer_id in sorted(labels, key=lambda k: assembler.sort_key(labels[k], k)):
        amount, count = received.get(customer_id, (ZERO, 0))
        rows.append({
            "customer_id": customer_id,
            "customer_name": labels[customer_id],
            "payment_count": count,
            "total_received": amount,
        })
    if unassigned_count:
        rows.append({
            "customer_id": None,
            "customer_name": assembler.UNASSIGNED,
            "payment_count": unassigned_count,
            "total_received": unassigned_amount,
        })

    totals = assembler.totals_row(rows, ("total_received",))
    totals["payment_count"] = sum(r["payment_count"] for r in rows)  # type: ignore[assignment]
    logger.info("Income by customer computed for company %s", company_id)
    return assembler.render({
        "period": q.window.as_period(),
        "rows": rows,
        "totals": totals,
    })  # type: ignore[return-value]


# ── Detail ───────────────────────────────────────────────────────────────────


def _invoice_detail(
    db: Session, q: ReportQuery, labels: dict[UUID, str], member: str,
) -> dict:
    id_field, name_field = f"{member}_id", f"{member}_name"
    rows = []
    for inv in ledger.sales_invoices(db, q):
        member_id = getattr(inv, id_field)
        if member_id not in labels:
            member_id = None
        rows.append({
            id_field: member_id,
            name_field: labels.get(member_id, assembler.UNASSIGNED),
            "invoice_id": inv.id,
            "invoice_number": inv.invoice_number,
            "invoice_date": inv.invoice_date.isoformat(),
            "due_date": inv.due_date.isoformat() if inv.due_date else None,
            "status": inv.status.value,
            "total_sales": ledger.to_decimal(inv.total_amount),
            "total_paid": ledger.to_decimal(inv.paid_amount),
            "total_balance_due": ledger.to_decimal(inv.balance_due),
        })
    # Stable sort keeps each member's invoices in date order
    rows.sort(key=lambda r: assembler.sort_key(labels.get(r[id_field]), r[id_field]))

    totals = assembler.totals_row(rows, INVOICE_FIELDS)
    totals["invoice_count"] = len(rows)  # type: ignore[assignment]
    return assembler.render({
        "period": q.window.as_period(),
        "rows": rows,
        "totals": totals,
    })  # type: ignore[return-value]


def sales_by_customer_detail(
    db: Session,
    company_id: UUID,
    start_date: date | None = None,
    end_date: date | None = None,
    customer_id: UUID | None = None,
    today: date | None = None,
) -> dict:
    """Every recognized invoice in the window, listed under its customer.

    Totals match :func:`sales_by_customer_summary` for the same window.
    """
    q = _query(company_id, start_date, end_date, None, today, customer_id=customer_id)
    labels = ledger.active_customers(db, company_id)
    return _invoice_detail(db, q, labels, "customer")


def sales_by_employee_detail(
    db: Session,
    company_id: UUID,
    start_date: date | None = None,
    end_date: date | None = None,
    employee_id: UUID | None = None,
    today: date | None = None,
) -> dict:
    q = _query(company_id, start_date, end_date, None, today, employee_id=employee_id)
    labels = {e.id: e.name for e in ledger.active_employees(db, company_id)}
    return _invoice_detail(db, q, labels, "employee")


def sales_by_product_detail(
    db: Session,
    company_id: UUID,
    start_date: date | None = None,
    end_date: date | None = None,
    product_id: UUID | None = None,
    today: date | None = None,
) -> dict:
    """One row per invoice line with its revenue, cost and gross profit.

    Revenue is ``quantity × actual_unit_price``; cost is ``quantity ×
    cost_price`` of the product, zero when the product is missing or
    inactive.
    """
    q = _query(company_id, start_date, end_date, None, today)
    names = ledger.product_names(db, company_id)

    rows = []
    for item, inv, cost_price, customer_name in ledger.sales_lines(db, q, product_id):
        quantity = item.quantity or 0
        unit_price = ledger.to_decimal(item.actual_unit_price)
        cost = ledger.to_decimal(cost_price)
        sales = unit_price * quantity
        rows.append({
            "invoice_id": inv.id,
            "invoice_number": inv.invoice_number,
            "invoice_date": inv.invoice_date.isoformat(),
            "customer_name": customer_name,
            "product_id": item.product_id,
            "product_name": names.get(item.product_id, assembler.UNASSIGNED),
            "description": item.description,
            "quantity_sold": quantity,
            "unit_price": unit_price,
            "cost_price": cost,
            "total_sales": sales,
            "total_cost": cost * quantity,
            "gross_profit": sales - cost * quantity,
        })
    rows.sort(key=lambda r: assembler.sort_key(names.get(r["product_id"]), r["product_id"]))

    totals = assembler.totals_row(rows, PRODUCT_FIELDS)
    totals["quantity_sold"] = sum(r["quantity_sold"] for r in rows)  # type: ignore[assignment]
    logger.info("Sales by product detail computed for company %s: %d lines", company_id, len(rows))
    return assembler.render({
        "period": q.window.as_period(),
        "rows": rows,
        "totals": totals,
    })  # type: ignore[return-value]
