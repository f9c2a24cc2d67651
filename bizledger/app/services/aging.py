from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from bizledger.app.core.config import settings
from bizledger.app.core.errors import ValidationError
from bizledger.app.models.invoice import Invoice
from bizledger.app.services import assembler, ledger

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

BUCKETS = ("due_today", "due_15_days", "due_30_days", "due_60_days", "over_60_days")
# Always sum to over_60_days
OVER_60_BREAKDOWN = ("overdue", "no_due_date", "due_after_60_days")
AMOUNT_FIELDS = BUCKETS + OVER_60_BREAKDOWN + ("total",)


def bucket(due_date: date | None, as_of_date: date) -> tuple[str, str | None]:
    """Assign an aging bucket based on the due date.

    Returns ``(bucket, breakdown)``; ``breakdown`` names which part of
    ``over_60_days`` the invoice belongs to, or ``None`` for the other buckets.
    Each bucket is exclusive on its lower bound and inclusive on its upper.
    """
    if due_date is None:
        return "over_60_days", "no_due_date"
    if due_date < as_of_date:
        return "over_60_days", "overdue"
    if due_date == as_of_date:
        return "due_today", None

    first, second, third = settings.AGING_BUCKET_DAYS
    if due_date <= as_of_date + timedelta(days=first):
        return "due_15_days", None
    elif due_date <= as_of_date + timedelta(days=second):
        return "due_30_days", None
    elif due_date <= as_of_date + timedelta(days=third):
        return "due_60_days", None
    return "over_60_days", "due_after_60_days"


def empty_buckets() -> dict[str, Decimal]:
    return {k: ZERO for k in AMOUNT_FIELDS}


def _add(buckets: dict[str, Decimal], inv: Invoice, as_of_date: date) -> str:
    amount = ledger.to_decimal(inv.balance_due)
    name, breakdown = bucket(inv.due_date, as_of_date)
    buckets[name] += amount
    if breakdown is not None:
        buckets[breakdown] += amount
    buckets["total"] += amount
    return name


def compute_ar_aging(
    db: Session, company_id: UUID, reference_date: date | None = None,
) -> dict:
    """Outstanding receivables per customer, bucketed by due date.

    Only collectable invoices with a positive balance are considered. A
    customer row's ``total`` is the sum of its five buckets and equals that
    customer's outstanding balance. Invoices with no customer, or whose
    customer has been deactivated, are reported on an ``Unassigned`` row.
    """
    if company_id is None:
        raise ValidationError("Company ID is required")
    as_of_date = reference_date or date.today()

    invoices = ledger.receivable_invoices(db, company_id)

    customer_data: dict[UUID | None, dict] = {}
    for inv, customer_name, is_active in invoices:
        assigned = inv.customer_id is not None and customer_name is not None and is_active
        key = inv.customer_id if assigned else None
        if key not in customer_data:
            customer_data[key] = {
                "name": customer_name if assigned else assembler.UNASSIGNED,
                "buckets": empty_buckets(),
            }
        _add(customer_data[key]["buckets"], inv, as_of_date)

    customers_list = []
    grand = empty_buckets()
    ordered = sorted(
        customer_data.items(),
        key=lambda x: assembler.sort_key(x[1]["name"] if x[0] is not None else None, x[0]),
    )
    for cust_id, data in ordered:
        b = data["buckets"]
        customers_list.append({
            "customer_id": str(cust_id) if cust_id is not None else None,
            "customer_name": data["name"],
            **b,
        })
        for k in grand:
            grand[k] += b[k]

    company = ledger.get_company(db, company_id)
    logger.info(
        "A/R aging for company %s as of %s: %d customers",
        company_id, as_of_date, len(customers_list),
    )
    return assembler.render({
        "as_of_date": as_of_date.isoformat(),
        "currency": assembler.currency_for(company),
        "kpi": {
            "total_receivable": grand["total"],
            "total_overdue": grand["overdue"],
            "invoice_count": len(invoices),
        },
        "customers": customers_list,
        "totals": {"customer_name": "Total", **grand},
        "warnings": assembler.payment_warnings(ledger.payment_violations(db, company_id)),
    })  # type: ignore[return-value]


def compute_ar_aging_detail(
    db: Session,
    company_id: UUID,
    customer_id: UUID,
    reference_date: date | None = None,
) -> dict:
    """Per-invoice aging for a single customer."""
    if company_id is None or customer_id is None:
        raise ValidationError("Company ID and customer ID are required")
    as_of_date = reference_date or date.today()

    rows = ledger.receivable_invoices(db, company_id, customer_id)
    b = empty_buckets()
    lines = []
    customer_name = None
    for inv, name, _ in rows:
        customer_name = name
        bkt = _add(b, inv, as_of_date)
        lines.append({
            "invoice_id": inv.id,
            "invoice_number": inv.invoice_number,
            "invoice_date": inv.invoice_date.isoformat(),
            "due_date": inv.due_date.isoformat() if inv.due_date else None,
            "days_overdue": (as_of_date - inv.due_date).days
            if inv.due_date and inv.due_date < as_of_date else 0,
            "total_amount": ledger.to_decimal(inv.total_amount),
            "paid_amount": ledger.to_decimal(inv.paid_amount),
            "balance_due": ledger.to_decimal(inv.balance_due),
            "bucket": bkt,
        })

    return assembler.render({
        "as_of_date": as_of_date.isoformat(),
        "customer_id": customer_id,
        "customer_name": customer_name,
        "invoices": lines,
        "totals": b,
    })  # type: ignore[return-value]


def list_customer_open_invoices(db: Session, company_id: UUID, customer_id: UUID) -> list[dict]:
    """Every invoice of a customer that still carries a balance; empty when none does."""
    if company_id is None or customer_id is None:
        raise ValidationError("Company ID and customer ID are required")
    invoices = ledger.open_invoices(db, company_id, customer_id)
    return [
        assembler.render({
            "id": inv.id,
            "invoice_number": inv.invoice_number,
            "invoice_date": inv.invoice_date.isoformat(),
            "due_date": inv.due_date.isoformat() if inv.due_date else None,
            "status": inv.status.value,
            "total_amount": ledger.to_decimal(inv.total_amount),
            "paid_amount": ledger.to_decimal(inv.paid_amount),
            "balance_due": ledger.to_decimal(inv.balance_due),
        })
        for inv in invoices
    ]
