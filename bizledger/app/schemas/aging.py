from __future__ import annotations

from pydantic import BaseModel

from bizledger.app.schemas.reports import ReportWarning


# ─── Aging Bucket Row ─────────────────────────────────────────────────────────


class AgingBuckets(BaseModel):
    due_today: str
    due_15_days: str
    due_30_days: str
    due_60_days: str
    over_60_days: str  # overdue + no_due_date + due_after_60_days
    overdue: str
    no_due_date: str
    due_after_60_days: str
    total: str


class AgingBucketRow(AgingBuckets):
    customer_id: str | None = None
    customer_name: str


# ─── AR Aging ────────────────────────────────────────────────────────────────


class ARAgingKPI(BaseModel):
    total_receivable: str
    total_overdue: str
    invoice_count: int


class ARAgingResponse(BaseModel):
    as_of_date: str
    currency: str
    kpi: ARAgingKPI
    customers: list[AgingBucketRow]
    totals: AgingBucketRow
    warnings: list[ReportWarning]


# ─── Customer Detail ─────────────────────────────────────────────────────────


class AgingInvoiceRow(BaseModel):
    invoice_id: str
    invoice_number: str
    invoice_date: str
    due_date: str | None = None
    days_overdue: int
    total_amount: str
    paid_amount: str
    balance_due: str
    bucket: str


class ARAgingDetailResponse(BaseModel):
    as_of_date: str
    customer_id: str
    customer_name: str | None = None
    invoices: list[AgingInvoiceRow]
    totals: AgingBuckets


class OpenInvoiceOut(BaseModel):
    id: str
    invoice_number: str
    invoice_date: str
    due_date: str | None = None
    status: str
    total_amount: str
    paid_amount: str
    balance_due: str
