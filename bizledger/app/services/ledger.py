"""Read-only access to the transactional ledger.

Every report goes through a :class:`ReportQuery`, a typed description of
the company, window, grouping dimension and optional member filter. The
query object is translated into parameterized SQLAlchemy expressions; no
SQL text is ever assembled by hand. Read failures surface as
:class:`DataSourceError` so that a database outage is never rendered as a
zero-valued report.
"""
from __future__ import annotations

import enum
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, case, extract, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bizledger.app.core.errors import DataSourceError, ValidationError
from bizledger.app.models.company import Company
from bizledger.app.models.customer import Customer, Employee
from bizledger.app.models.inventory import Product
from bizledger.app.models.invoice import Invoice, InvoiceItem, InvoiceStatus, Payment
from bizledger.app.services.periods import DateWindow

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# Invoices that count as recognized sales
INCOME_STATUSES = (
    InvoiceStatus.OPENED,
    InvoiceStatus.SENT,
    InvoiceStatus.PAID,
    InvoiceStatus.PARTIALLY_PAID,
)
PAID_STATUSES = (InvoiceStatus.PAID, InvoiceStatus.PARTIALLY_PAID)
RECEIVABLE_STATUSES = (
    InvoiceStatus.OPENED,
    InvoiceStatus.SENT,
    InvoiceStatus.PARTIALLY_PAID,
    InvoiceStatus.OVERDUE,
)
# Never receivable, whatever their balance says
NON_RECEIVABLE_STATUSES = (InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED)


class GroupBy(str, enum.Enum):
    CUSTOMER = "customer"
    EMPLOYEE = "employee"
    PRODUCT = "product"
    MONTH = "month"


@dataclass(frozen=True)
class ReportQuery:
    """Parameters of a single ledger read."""

    company_id: UUID
    window: DateWindow = field(default_factory=DateWindow)
    group_by: GroupBy | None = None
    customer_id: UUID | None = None
    employee_id: UUID | None = None

    def __post_init__(self) -> None:
        if self.company_id is None:
            raise ValidationError("Company ID is required")

    def ungrouped(self) -> ReportQuery:
        return ReportQuery(
            company_id=self.company_id,
            window=self.window,
            customer_id=self.customer_id,
            employee_id=self.employee_id,
        )


@dataclass
class LineTotals:
    product_income: Decimal = ZERO
    cost_of_sales: Decimal = ZERO
    quantity: Decimal = ZERO

    def __add__(self, other: LineTotals) -> LineTotals:
        return LineTotals(
            self.product_income + other.product_income,
            self.cost_of_sales + other.cost_of_sales,
            self.quantity + other.quantity,
        )


@dataclass
class InvoiceTotals:
    invoice_count: int = 0
    shipping_income: Decimal = ZERO
    tax_income: Decimal = ZERO
    discounts_given: Decimal = ZERO
    total_amount: Decimal = ZERO
    paid_amount: Decimal = ZERO
    balance_due: Decimal = ZERO
    # paid_amount restricted to PAID / PARTIALLY_PAID invoices
    total_paid: Decimal = ZERO

    def __add__(self, other: InvoiceTotals) -> InvoiceTotals:
        return InvoiceTotals(
            self.invoice_count + other.invoice_count,
            self.shipping_income + other.shipping_income,
            self.tax_income + other.tax_income,
            self.discounts_given + other.discounts_given,
            self.total_amount + other.total_amount,
            self.paid_amount + other.paid_amount,
            self.balance_due + other.balance_due,
            self.total_paid + other.total_paid,
        )


# ── Helpers ──────────────────────────────────────────────────────────────────


@contextmanager
def reading(what: str) -> Iterator[None]:
    """Translate driver/ORM failures into ``DataSourceError``."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("Ledger read failed: %s", what)
        raise DataSourceError(f"Could not read {what}") from exc


def to_decimal(value: object) -> Decimal:
    """NULL-safe conversion of a numeric column value."""
    if value is None:
        return ZERO
    return Decimal(str(value))


def _window_clauses(column: object, window: DateWindow) -> list[object]:
    clauses = []
    if window.start is not None:
        clauses.append(column >= window.start)  # type: ignore[operator]
    if window.end is not None:
        clauses.append(column <= window.end)  # type: ignore[operator]
    return clauses


def _invoice_clauses(q: ReportQuery) -> list[object]:
    clauses: list[object] = [Invoice.company_id == q.company_id]
    clauses.extend(_window_clauses(Invoice.invoice_date, q.window))
    if q.customer_id is not None:
        clauses.append(Invoice.customer_id == q.customer_id)
    if q.employee_id is not None:
        clauses.append(Invoice.employee_id == q.employee_id)
    return clauses


def _group_column(group_by: GroupBy | None, line_level: bool) -> object | None:
    if group_by is None:
        return None
    if group_by is GroupBy.CUSTOMER:
        return Invoice.customer_id
    if group_by is GroupBy.EMPLOYEE:
        return Invoice.employee_id
    if group_by is GroupBy.MONTH:
        return extract("month", Invoice.invoice_date)
    # Invoice-level figures (shipping, tax, discounts) belong to no product
    return InvoiceItem.product_id if line_level else None


def _normalize_key(group_by: GroupBy | None, key: object) -> object:
    if group_by is GroupBy.MONTH and key is not None:
        return int(key)  # type: ignore[call-overload]
    return key


def _select(db: Session, key_col: object | None, columns: list[object]):
    if key_col is None:
        return db.query(*columns)
    return db.query(key_col.label("key"), *columns)  # type: ignore[attr-defined]


# ── Line-level aggregates ────────────────────────────────────────────────────


def line_totals(db: Session, q: ReportQuery) -> dict[object, LineTotals]:
    """Product income, cost of sales and units per group.

    Cost comes from the product's ``cost_price``; a line whose product is
    missing or inactive contributes zero cost but keeps its own income.
    """
    key_col = _group_column(q.group_by, line_level=True)
    cost_price = func.coalesce(Product.cost_price, 0)
    columns = [
        func.coalesce(
            func.sum(InvoiceItem.quantity * InvoiceItem.actual_unit_price), 0
        ).label("product_income"),
        func.coalesce(func.sum(InvoiceItem.quantity * cost_price), 0).label("cost_of_sales"),
        func.coalesce(func.sum(InvoiceItem.quantity), 0).label("quantity"),
    ]
    query = _select(db, key_col, columns)
    query = (
        query.select_from(InvoiceItem)
        .join(Invoice, InvoiceItem.invoice_id == Invoice.id)
        .outerjoin(
            Product,
            and_(InvoiceItem.product_id == Product.id, Product.is_active.is_(True)),
        )
        .filter(Invoice.status.in_(INCOME_STATUSES), *_invoice_clauses(q))
    )
    if key_col is not None:
        query = query.group_by(key_col)

    with reading("invoice line totals"):
        rows = query.all()

    result: dict[object, LineTotals] = {}
    for r in rows:
        key = _normalize_key(q.group_by, r.key) if key_col is not None else None
        result[key] = result.get(key, LineTotals()) + LineTotals(
            to_decimal(r.product_income),
            to_decimal(r.cost_of_sales),
            to_decimal(r.quantity),
        )
    return result


# ── Invoice-level aggregates ─────────────────────────────────────────────────


def invoice_totals(db: Session, q: ReportQuery) -> dict[object, InvoiceTotals]:
    """Header figures of recognized invoices per group.

    Summed straight from ``invoices`` so header amounts are never
    multiplied by the number of lines.
    """
    key_col = _group_column(q.group_by, line_level=False)
    columns = [
        func.count(Invoice.id).label("invoice_count"),
        func.coalesce(func.sum(Invoice.shipping_cost), 0).label("shipping_income"),
        func.coalesce(func.sum(Invoice.tax_amount), 0).label("tax_income"),
        func.coalesce(func.sum(Invoice.discount_amount), 0).label("discounts_given"),
        func.coalesce(func.sum(Invoice.total_amount), 0).label("total_amount"),
        func.coalesce(func.sum(Invoice.paid_amount), 0).label("paid_amount"),
        func.coalesce(func.sum(Invoice.balance_due), 0).label("balance_due"),
        func.coalesce(
            func.sum(
                case((Invoice.status.in_(PAID_STATUSES), Invoice.paid_amount), else_=0)
            ),
            0,
        ).label("total_paid"),
    ]
    query = _select(db, key_col, columns)
    query = query.select_from(Invoice).filter(
        Invoice.status.in_(INCOME_STATUSES), *_invoice_clauses(q)
    )
    if key_col is not None:
        query = query.group_by(key_col)

    with reading("invoice totals"):
        rows = query.all()

    result: dict[object, InvoiceTotals] = {}
    for r in rows:
        if not r.invoice_count:
            continue
        key = _normalize_key(q.group_by, r.key) if key_col is not None else None
        result[key] = result.get(key, InvoiceTotals()) + InvoiceTotals(
            invoice_count=int(r.invoice_count),
            shipping_income=to_decimal(r.shipping_income),
            tax_income=to_decimal(r.tax_income),
            discounts_given=to_decimal(r.discounts_given),
            total_amount=to_decimal(r.total_amount),
            paid_amount=to_decimal(r.paid_amount),
            balance_due=to_decimal(r.balance_due),
            total_paid=to_decimal(r.total_paid),
        )
    return result


def outstanding_totals(
    db: Session, q: ReportQuery, *, windowed: bool = True,
) -> dict[object, Decimal]:
    """Sum of positive balances per group.

    ``windowed=True`` restricts to invoices dated inside the window
    (invoiced in the period and still outstanding); ``windowed=False``
    counts every open balance regardless of when it was invoiced.
    """
    key_col = _group_column(q.group_by, line_level=False)
    total = func.coalesce(func.sum(Invoice.balance_due), 0).label("outstanding")
    query = _select(db, key_col, [total])

    scope = q if windowed else ReportQuery(
        company_id=q.company_id,
        group_by=q.group_by,
        customer_id=q.customer_id,
        employee_id=q.employee_id,
    )
    query = query.select_from(Invoice).filter(
        Invoice.balance_due > 0,
        Invoice.status.notin_(NON_RECEIVABLE_STATUSES),
        *_invoice_clauses(scope),
    )
    if key_col is not None:
        query = query.group_by(key_col)

    with reading("outstanding balances"):
        rows = query.all()

    result: dict[object, Decimal] = {}
    for r in rows:
        key = _normalize_key(q.group_by, r.key) if key_col is not None else None
        result[key] = result.get(key, ZERO) + to_decimal(r.outstanding)
    return result


def payment_violations(
    db: Session, company_id: UUID, window: DateWindow | None = None,
) -> list[dict[str, object]]:
    """Invoices whose payments exceed the invoiced amount.

    Covers a negative ``balance_due``, ``paid_amount > total_amount`` and a
    sum of payment records above ``total_amount``.
    """
    paid_sub = (
        db.query(
            Payment.invoice_id.label("invoice_id"),
            func.sum(Payment.amount).label("payments_total"),
        )
        .group_by(Payment.invoice_id)
        .subquery()
    )
    query = (
        db.query(Invoice, paid_sub.c.payments_total)
        .outerjoin(paid_sub, paid_sub.c.invoice_id == Invoice.id)
        .filter(
            Invoice.company_id == company_id,
            Invoice.status != InvoiceStatus.CANCELLED,
            or_(
                Invoice.balance_due < 0,
                Invoice.paid_amount > Invoice.total_amount,
                paid_sub.c.payments_total > Invoice.total_amount,
            ),
        )
    )
    if window is not None:
        query = query.filter(*_window_clauses(Invoice.invoice_date, window))

    with reading("payment records"):
        rows = query.order_by(Invoice.invoice_number).all()

    return [
        {
            "invoice_id": inv.id,
            "invoice_number": inv.invoice_number,
            "total_amount": to_decimal(inv.total_amount),
            "paid_amount": to_decimal(inv.paid_amount),
            "payments_total": to_decimal(payments_total),
            "balance_due": to_decimal(inv.balance_due),
        }
        for inv, payments_total in rows
    ]


def payment_totals(db: Session, q: ReportQuery) -> dict[object, tuple[Decimal, int]]:
    """Payments received per customer, windowed on ``payment_date``."""
    query = (
        db.query(
            Payment.customer_id.label("key"),
            func.coalesce(func.sum(Payment.amount), 0).label("amount"),
            func.count(Payment.id).label("payment_count"),
        )
        .filter(
            Payment.company_id == q.company_id,
            *_window_clauses(Payment.payment_date, q.window),
        )
        .group_by(Payment.customer_id)
    )
    if q.customer_id is not None:
        query = query.filter(Payment.customer_id == q.customer_id)

    with reading("payments"):
        rows = query.all()
    return {r.key: (to_decimal(r.amount), int(r.payment_count)) for r in rows}


# ── Point-in-time inventory ──────────────────────────────────────────────────


def shrinkage_products(db: Session, company_id: UUID) -> list[Product]:
    """Active products whose system stock exceeds the last physical count."""
    with reading("products"):
        return (
            db.query(Product)
            .filter(
                Product.company_id == company_id,
                Product.is_active.is_(True),
                Product.manual_count.isnot(None),
                Product.quantity_on_hand > Product.manual_count,
            )
            .order_by(Product.name, Product.id)
            .all()
        )


# ── Receivables ──────────────────────────────────────────────────────────────


def receivable_invoices(
    db: Session, company_id: UUID, customer_id: UUID | None = None,
) -> list:
    """Open receivables: outstanding invoices in a collectable status."""
    query = (
        db.query(Invoice, Customer.name.label("customer_name"), Customer.is_active)
        .outerjoin(Customer, Invoice.customer_id == Customer.id)
        .filter(
            Invoice.company_id == company_id,
            Invoice.status.in_(RECEIVABLE_STATUSES),
            Invoice.balance_due > 0,
        )
    )
    if customer_id is not None:
        query = query.filter(Invoice.customer_id == customer_id)
    with reading("receivable invoices"):
        return query.order_by(Invoice.due_date, Invoice.invoice_number).all()


def open_invoices(db: Session, company_id: UUID, customer_id: UUID) -> list[Invoice]:
    with reading("customer invoices"):
        return (
            db.query(Invoice)
            .filter(
                Invoice.company_id == company_id,
                Invoice.customer_id == customer_id,
                Invoice.balance_due > 0,
                Invoice.status.notin_(NON_RECEIVABLE_STATUSES),
            )
            .order_by(Invoice.due_date, Invoice.invoice_number)
            .all()
        )


# ── Sales detail ─────────────────────────────────────────────────────────────


def sales_invoices(db: Session, q: ReportQuery) -> list[Invoice]:
    """Recognized invoices dated inside the window, oldest first."""
    with reading("sales invoices"):
        return (
            db.query(Invoice)
            .filter(Invoice.status.in_(INCOME_STATUSES), *_invoice_clauses(q))
            .order_by(Invoice.invoice_date, Invoice.invoice_number, Invoice.id)
            .all()
        )


def sales_lines(
    db: Session, q: ReportQuery, product_id: UUID | None = None,
) -> list:
    """Lines of recognized invoices with their unit cost and customer name.

    ``cost_price`` is zero for a line whose product is missing or inactive,
    matching :func:`line_totals`.
    """
    query = (
        db.query(
            InvoiceItem,
            Invoice,
            func.coalesce(Product.cost_price, 0).label("cost_price"),
            Customer.name.label("customer_name"),
        )
        .join(Invoice, InvoiceItem.invoice_id == Invoice.id)
        .outerjoin(
            Product,
            and_(InvoiceItem.product_id == Product.id, Product.is_active.is_(True)),
        )
        .outerjoin(Customer, Invoice.customer_id == Customer.id)
        .filter(Invoice.status.in_(INCOME_STATUSES), *_invoice_clauses(q))
    )
    if product_id is not None:
        query = query.filter(InvoiceItem.product_id == product_id)
    with reading("sales lines"):
        return query.order_by(
            Invoice.invoice_date, Invoice.invoice_number, InvoiceItem.id
        ).all()


# ── Commission ───────────────────────────────────────────────────────────────


def commission_lines(
    db: Session, company_id: UUID | None, window: DateWindow,
) -> list:
    """Every non-cancelled invoice line with its product, invoice, customer and company name."""
    query = (
        db.query(
            InvoiceItem,
            Invoice,
            Product,
            Customer.name.label("customer_name"),
            Company.name.label("company_name"),
        )
        .join(Invoice, InvoiceItem.invoice_id == Invoice.id)
        .join(Product, InvoiceItem.product_id == Product.id)
        .outerjoin(Company, Invoice.company_id == Company.id)
        .outerjoin(Customer, Invoice.customer_id == Customer.id)
        .filter(
            Invoice.status != InvoiceStatus.CANCELLED,
            *_window_clauses(Invoice.invoice_date, window),
        )
    )
    if company_id is not None:
        query = query.filter(Invoice.company_id == company_id)
    with reading("commission lines"):
        return query.order_by(
            Invoice.invoice_date.desc(), Invoice.invoice_number, InvoiceItem.id
        ).all()


# ── Dimensions ───────────────────────────────────────────────────────────────


def get_company(db: Session, company_id: UUID) -> Company | None:
    with reading("company"):
        return db.query(Company).filter(Company.id == company_id).first()


def active_customers(db: Session, company_id: UUID) -> dict[UUID, str]:
    with reading("customers"):
        rows = (
            db.query(Customer.id, Customer.name)
            .filter(Customer.company_id == company_id, Customer.is_active.is_(True))
            .all()
        )
    return {r.id: r.name for r in rows}


def active_employees(
    db: Session, company_id: UUID | None = None,
) -> list[Employee]:
    query = db.query(Employee).filter(Employee.is_active.is_(True))
    if company_id is not None:
        query = query.filter(Employee.company_id == company_id)
    with reading("employees"):
        return query.order_by(Employee.name, Employee.id).all()


def get_employee(db: Session, employee_id: UUID) -> Employee | None:
    with reading("employee"):
        return db.query(Employee).filter(Employee.id == employee_id).first()


def product_names(db: Session, company_id: UUID) -> dict[UUID, str]:
    with reading("products"):
        rows = db.query(Product.id, Product.name).filter(Product.company_id == company_id).all()
    return {r.id: r.name for r in rows}


def active_products(db: Session, company_id: UUID) -> list[Product]:
    with reading("products"):
        return (
            db.query(Product)
            .filter(Product.company_id == company_id, Product.is_active.is_(True))
            .order_by(Product.name, Product.id)
            .all()
        )
