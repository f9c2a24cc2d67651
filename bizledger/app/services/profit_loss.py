"""Profit & Loss aggregation.

Period figures (income, cost of sales, cash received) come from invoices
dated inside the report window. Inventory shrinkage is different: it is the
value of stock missing at the last physical count *right now*, so it is
computed separately, without any date filter, and only merged into the
report at assembly time.
"""
from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from bizledger.app.core.errors import ValidationError
from bizledger.app.services import assembler, ledger
from bizledger.app.services.ledger import (
    GroupBy,
    InvoiceTotals,
    LineTotals,
    ReportQuery,
)
from bizledger.app.services.periods import month_window, resolve_window, year_window

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# Figures compared between the grouped and the ungrouped computation
RECONCILED_FIGURES = (
    "product_income",
    "shipping_income",
    "tax_income",
    "discounts_given",
    "total_income",
    "net_income",
    "cost_of_sales",
    "inventory_shrinkage",
    "total_cost_of_sales",
    "gross_profit",
    "net_earnings",
    "total_paid",
    "outstanding_balance",
    "outstanding_as_of",
)


@dataclass
class ProfitAndLossFigures:
    """Raw, unrounded P&L inputs for one group (or a whole company)."""

    lines: LineTotals = field(default_factory=LineTotals)
    invoices: InvoiceTotals = field(default_factory=InvoiceTotals)
    inventory_shrinkage: Decimal = ZERO
    # Invoiced inside the window and still unpaid
    outstanding_balance: Decimal = ZERO
    # Every open balance, whenever it was invoiced
    outstanding_as_of: Decimal = ZERO
    # Slots for data sources that do not exist yet; always zero today
    other_income: Decimal = ZERO
    operating_expenses: Decimal = ZERO
    other_expenses: Decimal = ZERO

    def __add__(self, other: ProfitAndLossFigures) -> ProfitAndLossFigures:
        return ProfitAndLossFigures(
            lines=self.lines + other.lines,
            invoices=self.invoices + other.invoices,
            inventory_shrinkage=self.inventory_shrinkage + other.inventory_shrinkage,
            outstanding_balance=self.outstanding_balance + other.outstanding_balance,
            outstanding_as_of=self.outstanding_as_of + other.outstanding_as_of,
            other_income=self.other_income + other.other_income,
            operating_expenses=self.operating_expenses + other.operating_expenses,
            other_expenses=self.other_expenses + other.other_expenses,
        )

    @property
    def product_income(self) -> Decimal:
        return self.lines.product_income

    @property
    def shipping_income(self) -> Decimal:
        return self.invoices.shipping_income

    @property
    def tax_income(self) -> Decimal:
        return self.invoices.tax_income

    @property
    def discounts_given(self) -> Decimal:
        return self.invoices.discounts_given

    @property
    def total_income(self) -> Decimal:
        # Discounts are applied afterwards, in net_income
        return self.product_income + self.shipping_income + self.tax_income

    @property
    def net_income(self) -> Decimal:
        return self.total_income - self.discounts_given

    @property
    def cost_of_sales(self) -> Decimal:
        return self.lines.cost_of_sales

    @property
    def total_cost_of_sales(self) -> Decimal:
        return self.cost_of_sales + self.inventory_shrinkage

    @property
    def gross_profit(self) -> Decimal:
        return self.net_income - self.total_cost_of_sales

    @property
    def total_expenses(self) -> Decimal:
        return self.operating_expenses + self.other_expenses

    @property
    def net_earnings(self) -> Decimal:
        return self.gross_profit + self.other_income - self.total_expenses

    @property
    def total_paid(self) -> Decimal:
        return self.invoices.total_paid

    def figures(self) -> dict[str, Decimal]:
        return {name: getattr(self, name) for name in RECONCILED_FIGURES}

    def sections(self) -> dict[str, dict[str, object]]:
        """Report sections with raw values; rounding happens in the assembler."""
        return {
            "income": {
                "sales_of_product_income": self.product_income,
                "shipping_income": self.shipping_income,
                "tax_income": self.tax_income,
                "discounts_given": -self.discounts_given,
                "other_income": self.other_income,
                "total_income": self.total_income,
                "net_income": self.net_income,
            },
            "cost_of_sales": {
                "cost_of_sales": self.cost_of_sales,
                "inventory_shrinkage": self.inventory_shrinkage,
                "total_cost_of_sales": self.total_cost_of_sales,
            },
            "expenses": {
                "operating_expenses": self.operating_expenses,
                "other_expenses": self.other_expenses,
                "total_expenses": self.total_expenses,
            },
            "profitability": {
                "gross_profit": self.gross_profit,
                "net_earnings": self.net_earnings,
                "gross_profit_margin": assembler.ratio(self.gross_profit, self.total_income),
                "net_profit_margin": assembler.ratio(self.net_earnings, self.total_income),
            },
            "cash_flow": {
                "total_invoiced": self.total_income,
                "total_paid": self.total_paid,
                "outstanding_balance": self.outstanding_balance,
                "invoiced_and_still_outstanding": self.outstanding_balance,
                "outstanding_as_of": self.outstanding_as_of,
                "collection_rate": assembler.ratio(self.total_paid, self.total_income),
            },
            "summary": {
                "total_revenue": self.total_income,
                "total_costs": self.total_cost_of_sales + self.total_expenses,
                "net_profit_loss": self.net_earnings,
                "is_profitable": self.net_earnings > ZERO,
                "invoice_count": self.invoices.invoice_count,
            },
        }


# ── Inventory shrinkage (point in time) ──────────────────────────────────────


def _shrinkage_rows(db: Session, company_id: UUID) -> list[dict[str, object]]:
    rows = []
    for p in ledger.shrinkage_products(db, company_id):
        missing = max(0, (p.quantity_on_hand or 0) - (p.manual_count or 0))
        cost = ledger.to_decimal(p.cost_price)
        rows.append({
            "product_id": p.id,
            "name": p.name,
            "sku": p.sku,
            "quantity_on_hand": p.quantity_on_hand,
            "manual_count": p.manual_count,
            "missing_quantity": missing,
            "cost_price": cost,
            "shrinkage_value": cost * missing,
        })
    return rows


def inventory_shrinkage_total(db: Session, company_id: UUID) -> Decimal:
    return sum((r["shrinkage_value"] for r in _shrinkage_rows(db, company_id)), ZERO)


def compute_inventory_shrinkage(db: Session, company_id: UUID) -> dict[str, object]:
    """Per-product shrinkage as of now, valued at cost."""
    if company_id is None:
        raise ValidationError("Company ID is required")
    company = ledger.get_company(db, company_id)
    rows = _shrinkage_rows(db, company_id)
    total = sum((r["shrinkage_value"] for r in rows), ZERO)
    return assembler.render({
        "company": assembler.company_block(company, company_id),
        "currency": assembler.currency_for(company),
        "products": rows,
        "total_shrinkage": total,
    })  # type: ignore[return-value]


# ── Inventory valuation (point in time) ──────────────────────────────────────


def _valuation_rows(db: Session, company_id: UUID, detail: bool) -> list[dict[str, object]]:
    rows = []
    for p in ledger.active_products(db, company_id):
        on_hand = p.quantity_on_hand or 0
        unit_price = ledger.to_decimal(p.unit_price)
        row: dict[str, object] = {
            "product_id": p.id,
            "name": p.name,
            "sku": p.sku,
            "quantity_on_hand": on_hand,
            "unit_price": unit_price,
            "total_value": unit_price * on_hand,
        }
        if detail:
            cost = ledger.to_decimal(p.cost_price)
            row["cost_price"] = cost
            row["cost_value"] = cost * on_hand
        rows.append(row)
    return rows


def _valuation_report(db: Session, company_id: UUID, detail: bool) -> dict[str, object]:
    if company_id is None:
        raise ValidationError("Company ID is required")
    company = ledger.get_company(db, company_id)
    rows = _valuation_rows(db, company_id, detail)
    keys = ("total_value", "cost_value") if detail else ("total_value",)
    totals = assembler.totals_row(rows, keys)
    totals["quantity_on_hand"] = sum(r["quantity_on_hand"] for r in rows)  # type: ignore[misc]
    return assembler.render({
        "company": assembler.company_block(company, company_id),
        "currency": assembler.currency_for(company),
        "products": rows,
        "totals": totals,
    })  # type: ignore[return-value]


def compute_inventory_valuation_summary(db: Session, company_id: UUID) -> dict[str, object]:
    """Stock on hand of every active product valued at its selling price."""
    return _valuation_report(db, company_id, detail=False)


def compute_inventory_valuation_detail(db: Session, company_id: UUID) -> dict[str, object]:
    """Valuation summary plus each product's cost price and value at cost."""
    return _valuation_report(db, company_id, detail=True)


# ── Period aggregation ───────────────────────────────────────────────────────


def _figures_by_group(db: Session, q: ReportQuery) -> dict[object, ProfitAndLossFigures]:
    lines = ledger.line_totals(db, q)
    invoices = ledger.invoice_totals(db, q)
    outstanding = ledger.outstanding_totals(db, q)
    outstanding_now = ledger.outstanding_totals(db, q, windowed=False)

    keys = set(lines) | set(invoices) | set(outstanding) | set(outstanding_now)
    if q.group_by is None:
        keys.add(None)
    return {
        key: ProfitAndLossFigures(
            lines=lines.get(key, LineTotals()),
            invoices=invoices.get(key, InvoiceTotals()),
            outstanding_balance=outstanding.get(key, ZERO),
            outstanding_as_of=outstanding_now.get(key, ZERO),
        )
        for key in keys
    }


def _dimension_labels(db: Session, company_id: UUID, group_by: GroupBy) -> dict[object, str]:
    if group_by is GroupBy.CUSTOMER:
        return dict(ledger.active_customers(db, company_id))
    if group_by is GroupBy.EMPLOYEE:
        return {e.id: e.name for e in ledger.active_employees(db, company_id)}
    if group_by is GroupBy.PRODUCT:
        return dict(ledger.product_names(db, company_id))
    raise ValidationError(f"Unsupported grouping: {group_by.value}")


def _parse_group_by(group_by: GroupBy | str | None) -> GroupBy | None:
    if group_by is None or isinstance(group_by, GroupBy):
        return group_by
    try:
        parsed = GroupBy(group_by)
    except ValueError:
        parsed = None
    if parsed is None or parsed is GroupBy.MONTH:
        raise ValidationError(
            f"group_by must be one of: customer, employee, product (got {group_by!r})"
        )
    return parsed


def compute_profit_and_loss(
    db: Session,
    company_id: UUID,
    start_date: date | None = None,
    end_date: date | None = None,
    group_by: GroupBy | str | None = None,
    customer_id: UUID | None = None,
    employee_id: UUID | None = None,
    today: date | None = None,
) -> dict[str, object]:
    """Profit & Loss for a company, optionally per customer, employee or product.

    Without ``group_by`` a single company-wide report is returned. With it,
    the result carries one row per active dimension member, an
    ``unallocated`` row (figures no member can own: invoices without an
    active customer/employee, invoice-level charges when grouping by
    product, and inventory shrinkage) and a ``total`` that is the sum of
    all of them. ``is_consistent`` tells whether that sum matches the
    ungrouped computation.
    """
    if company_id is None:
        raise ValidationError("Company ID is required")
    dimension = _parse_group_by(group_by)
    window = resolve_window(start_date, end_date, today=today)
    q = ReportQuery(
        company_id=company_id,
        window=window,
        group_by=dimension,
        customer_id=customer_id,
        employee_id=employee_id,
    )

    company = ledger.get_company(db, company_id)
    shrinkage = inventory_shrinkage_total(db, company_id)
    violations = ledger.payment_violations(db, company_id, window)

    header = {
        "company": assembler.company_block(company, company_id),
        "period": window.as_period(),
        "currency": assembler.currency_for(company),
        "group_by": dimension.value if dimension else None,
    }
    if customer_id is not None:
        header["customer_id"] = str(customer_id)
    if employee_id is not None:
        header["employee_id"] = str(employee_id)

    if dimension is None:
        figures = _figures_by_group(db, q)[None]
        figures.inventory_shrinkage = shrinkage
        logger.info("P&L computed for company %s (%s)", company_id, window.as_period())
        return assembler.render({
            **header,
            **figures.sections(),
            "warnings": assembler.payment_warnings(violations),
        })  # type: ignore[return-value]

    labels = _dimension_labels(db, company_id, dimension)
    unallocated = ProfitAndLossFigures(inventory_shrinkage=shrinkage)
    members: dict[object, ProfitAndLossFigures] = {}
    for key, figures in _figures_by_group(db, q).items():
        if key in labels:
            members[key] = figures
        else:
            unallocated = unallocated + figures

    total = sum(members.values(), unallocated)

    reference = _figures_by_group(db, q.ungrouped())[None]
    reference.inventory_shrinkage = shrinkage
    mismatched = assembler.check_totals(
        f"P&L by {dimension.value}", total.figures(), reference.figures(),
    )

    ordered = sorted(members, key=lambda k: assembler.sort_key(labels[k], k))
    groups = [
        {"id": str(key), "name": labels[key], **members[key].sections()}
        for key in ordered
    ]
    logger.info(
        "P&L by %s computed for company %s: %d groups", dimension.value, company_id, len(groups),
    )
    return assembler.render({
        **header,
        "groups": groups,
        "unallocated": {"name": assembler.UNASSIGNED, **unallocated.sections()},
        "total": total.sections(),
        "is_consistent": not mismatched,
        "warnings": assembler.payment_warnings(violations),
    })  # type: ignore[return-value]


# ── Monthly breakdown ────────────────────────────────────────────────────────


def compute_monthly_profit_and_loss(
    db: Session,
    company_id: UUID,
    year: int | None = None,
    today: date | None = None,
) -> dict[str, object]:
    """Month-by-month P&L for one calendar year; months without activity are omitted.

    Each month carries the same sections as the full report, computed over
    that month's invoices. Inventory shrinkage is a point-in-time figure
    that belongs to no month, so it is left out of every row and of the
    year totals. Both outstanding figures of a month are the balance still
    open on invoices dated in it.
    """
    if company_id is None:
        raise ValidationError("Company ID is required")
    if year is None:
        year = (today or date.today()).year
    q = ReportQuery(company_id=company_id, window=year_window(year), group_by=GroupBy.MONTH)

    lines = ledger.line_totals(db, q)
    invoices = ledger.invoice_totals(db, q)
    outstanding = ledger.outstanding_totals(db, q)
    months = sorted(k for k in set(lines) | set(invoices) | set(outstanding) if k is not None)

    rows: list[dict[str, object]] = []
    year_total = ProfitAndLossFigures()
    for month in months:
        open_balance = outstanding.get(month, ZERO)
        f = ProfitAndLossFigures(
            lines=lines.get(month, LineTotals()),
            invoices=invoices.get(month, InvoiceTotals()),
            outstanding_balance=open_balance,
            outstanding_as_of=open_balance,
        )
        year_total = year_total + f
        rows.append({
            "month": month,
            "month_name": calendar.month_name[month],
            "period": month_window(year, month).as_period(),
            **f.sections(),
        })

    company = ledger.get_company(db, company_id)
    logger.info("Monthly P&L computed for company %s, %d: %d months", company_id, year, len(rows))
    return assembler.render({
        "company_id": str(company_id),
        "year": year,
        "currency": assembler.currency_for(company),
        "monthly_breakdown": rows,
        "totals": year_total.sections(),
    })  # type: ignore[return-value]
