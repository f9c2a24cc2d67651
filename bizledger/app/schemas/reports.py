"""Pydantic response schemas for financial reports.

Every monetary amount is a fixed-point decimal string with two places.
"""
from __future__ import annotations

from pydantic import BaseModel


# ── Shared ───────────────────────────────────────────────────────────────────

class CompanyInfo(BaseModel):
    id: str
    name: str | None = None
    address: str | None = None
    email: str | None = None
    phone: str | None = None


class Period(BaseModel):
    start_date: str | None = None
    end_date: str | None = None


class ReportWarning(BaseModel):
    code: str
    invoice_id: str
    invoice_number: str
    detail: dict[str, str]


# ── Profit & Loss ────────────────────────────────────────────────────────────

class IncomeSection(BaseModel):
    sales_of_product_income: str
    shipping_income: str
    tax_income: str
    discounts_given: str
    other_income: str
    total_income: str
    net_income: str


class CostOfSalesSection(BaseModel):
    cost_of_sales: str
    inventory_shrinkage: str
    total_cost_of_sales: str


class ExpensesSection(BaseModel):
    operating_expenses: str
    other_expenses: str
    total_expenses: str


class ProfitabilitySection(BaseModel):
    gross_profit: str
    net_earnings: str
    gross_profit_margin: str
    net_profit_margin: str


class CashFlowSection(BaseModel):
    total_invoiced: str
    total_paid: str
    outstanding_balance: str
    invoiced_and_still_outstanding: str
    outstanding_as_of: str
    collection_rate: str


class SummarySection(BaseModel):
    total_revenue: str
    total_costs: str
    net_profit_loss: str
    is_profitable: bool
    invoice_count: int


class ProfitAndLossSections(BaseModel):
    income: IncomeSection
    cost_of_sales: CostOfSalesSection
    expenses: ExpensesSection
    profitability: ProfitabilitySection
    cash_flow: CashFlowSection
    summary: SummarySection


class ProfitAndLossGroup(ProfitAndLossSections):
    id: str | None = None
    name: str


class ProfitAndLossResponse(BaseModel):
    company: CompanyInfo
    period: Period
    currency: str
    group_by: str | None = None
    customer_id: str | None = None
    employee_id: str | None = None
    # Ungrouped report
    income: IncomeSection | None = None
    cost_of_sales: CostOfSalesSection | None = None
    expenses: ExpensesSection | None = None
    profitability: ProfitabilitySection | None = None
    cash_flow: CashFlowSection | None = None
    summary: SummarySection | None = None
    # Grouped report
    groups: list[ProfitAndLossGroup] | None = None
    unallocated: ProfitAndLossGroup | None = None
    total: ProfitAndLossSections | None = None
    is_consistent: bool | None = None
    warnings: list[ReportWarning]


# ── Monthly P&L ──────────────────────────────────────────────────────────────

class MonthlyRow(ProfitAndLossSections):
    month: int
    month_name: str
    period: Period


class MonthlyProfitAndLossResponse(BaseModel):
    company_id: str
    year: int
    currency: str
    monthly_breakdown: list[MonthlyRow]
    totals: ProfitAndLossSections


# ── Inventory Shrinkage ──────────────────────────────────────────────────────

class ShrinkageRow(BaseModel):
    product_id: str
    name: str
    sku: str | None = None
    quantity_on_hand: int
    manual_count: int | None = None
    missing_quantity: int
    cost_price: str
    shrinkage_value: str


class InventoryShrinkageResponse(BaseModel):
    company: CompanyInfo
    currency: str
    products: list[ShrinkageRow]
    total_shrinkage: str


# ── Inventory Valuation ──────────────────────────────────────────────────────

class ValuationRow(BaseModel):
    product_id: str
    name: str
    sku: str | None = None
    quantity_on_hand: int
    unit_price: str
    total_value: str


class ValuationDetailRow(ValuationRow):
    cost_price: str
    cost_value: str


class ValuationTotals(BaseModel):
    quantity_on_hand: int
    total_value: str
    cost_value: str | None = None


class InventoryValuationResponse(BaseModel):
    company: CompanyInfo
    currency: str
    products: list[ValuationRow]
    totals: ValuationTotals


class InventoryValuationDetailResponse(BaseModel):
    company: CompanyInfo
    currency: str
    products: list[ValuationDetailRow]
    totals: ValuationTotals


# ── Commission ───────────────────────────────────────────────────────────────

class CommissionRow(BaseModel):
    employee_id: str
    employee_name: str
    email: str | None = None
    line_count: int
    total_commission: str


class CommissionReportResponse(BaseModel):
    period: Period
    employees: list[CommissionRow]
    total_commission: str


class EmployeeInfo(BaseModel):
    id: str
    name: str
    email: str | None = None


class CommissionLine(BaseModel):
    invoice_id: str
    invoice_number: str
    invoice_date: str
    company_id: str
    company_name: str | None = None
    customer_name: str | None = None
    product_id: str
    product_name: str
    quantity: int
    commission_per_unit: str
    line_commission: str


class CommissionDetailResponse(BaseModel):
    employee: EmployeeInfo
    period: Period
    total_commission: str
    invoice_lines: list[CommissionLine]
