"""Tests for the Profit & Loss, monthly P&L and inventory shrinkage reports."""
from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from bizledger.app.core.errors import DataSourceError, UnavailableError, ValidationError
from bizledger.app.models import Company, Customer, Employee, InvoiceStatus, Product
from bizledger.app.services.ledger import GroupBy
from bizledger.app.services.profit_loss import (
    compute_inventory_shrinkage,
    compute_inventory_valuation_detail,
    compute_inventory_valuation_summary,
    compute_monthly_profit_and_loss,
    compute_profit_and_loss,
)
from bizledger.tests.factories import make_invoice

START = date(2024, 1, 1)
END = date(2024, 12, 31)


def _sum(rows: list[dict], section: str, key: str) -> Decimal:
    return sum((Decimal(r[section][key]) for r in rows), Decimal("0"))


# ─── Core figures ────────────────────────────────────────────────────────────


class TestProfitAndLoss:
    def test_single_invoice_scenario(
        self, db: Session, company: Company, customer: Customer, product_a: Product,
    ) -> None:
        """1000 total, 100 discount, 50 tax, 10 × 90 at cost 40."""
        make_invoice(
            db, company,
            number="INV-001",
            invoice_date=date(2024, 3, 10),
            customer=customer,
            lines=[(product_a, 10, Decimal("90"))],
            discount=Decimal("100"),
            tax=Decimal("50"),
            total=Decimal("1000"),
        )
        result = compute_profit_and_loss(db, company.id, START, END)

        assert result["income"]["sales_of_product_income"] == "900.00"
        assert result["income"]["tax_income"] == "50.00"
        assert result["income"]["discounts_given"] == "-100.00"
        assert result["income"]["total_income"] == "950.00"
        assert result["income"]["net_income"] == "850.00"
        assert result["cost_of_sales"]["cost_of_sales"] == "400.00"
        assert result["profitability"]["gross_profit"] == "450.00"
        assert result["profitability"]["net_earnings"] == "450.00"
        assert result["profitability"]["gross_profit_margin"] == "47.37"
        assert result["summary"]["invoice_count"] == 1
        assert result["summary"]["is_profitable"] is True

    def test_report_header(self, db: Session, company: Company) -> None:
        result = compute_profit_and_loss(db, company.id, START, END)
        assert result["company"]["id"] == str(company.id)
        assert result["company"]["name"] == "Test Trading Co"
        assert result["period"] == {"start_date": "2024-01-01", "end_date": "2024-12-31"}
        assert result["currency"] == "LKR"
        assert result["warnings"] == []
        assert "generated_at" not in result

    def test_company_currency_is_used(self, db: Session, other_company: Company) -> None:
        result = compute_profit_and_loss(db, other_company.id, START, END)
        assert result["currency"] == "USD"

    def test_margins_zero_without_income(self, db: Session, company: Company) -> None:
        result = compute_profit_and_loss(db, company.id, START, END)
        assert result["income"]["total_income"] == "0.00"
        assert result["profitability"]["gross_profit_margin"] == "0.00"
        assert result["profitability"]["net_profit_margin"] == "0.00"
        assert result["cash_flow"]["collection_rate"] == "0.00"
        assert result["summary"]["is_profitable"] is False

    def test_missing_product_costs_nothing(
        self, db: Session, company: Company, product_a: Product,
    ) -> None:
        make_invoice(
            db, company,
            number="INV-002",
            invoice_date=date(2024, 4, 1),
            lines=[(None, 3, Decimal("50")), (product_a, 1, Decimal("90"))],
        )
        result = compute_profit_and_loss(db, company.id, START, END)
        assert result["income"]["sales_of_product_income"] == "240.00"
        assert result["cost_of_sales"]["cost_of_sales"] == "40.00"

    def test_inactive_product_costs_nothing(
        self, db: Session, company: Company, product_a: Product,
    ) -> None:
        make_invoice(
            db, company,
            number="INV-003",
            invoice_date=date(2024, 4, 1),
            lines=[(product_a, 2, Decimal("90"))],
        )
        product_a.is_active = False
        db.flush()
        result = compute_profit_and_loss(db, company.id, START, END)
        assert result["income"]["sales_of_product_income"] == "180.00"
        assert result["cost_of_sales"]["cost_of_sales"] == "0.00"

    def test_draft_and_cancelled_invoices_excluded(
        self, db: Session, company: Company, product_a: Product,
    ) -> None:
        for number, inv_status in (
            ("INV-D", InvoiceStatus.DRAFT),
            ("INV-C", InvoiceStatus.CANCELLED),
        ):
            make_invoice(
                db, company,
                number=number,
                invoice_date=date(2024, 5, 1),
                lines=[(product_a, 1, Decimal("90"))],
                status=inv_status,
            )
        result = compute_profit_and_loss(db, company.id, START, END)
        assert result["income"]["total_income"] == "0.00"
        assert result["cash_flow"]["outstanding_balance"] == "0.00"
        assert result["cash_flow"]["outstanding_as_of"] == "0.00"
        assert result["summary"]["invoice_count"] == 0

    def test_header_amounts_not_multiplied_by_lines(
        self, db: Session, company: Company, product_a: Product, product_b: Product,
    ) -> None:
        make_invoice(
            db, company,
            number="INV-004",
            invoice_date=date(2024, 6, 1),
            lines=[(product_a, 1, Decimal("90")), (product_b, 1, Decimal("200"))],
            shipping=Decimal("25"),
            tax=Decimal("10"),
        )
        result = compute_profit_and_loss(db, company.id, START, END)
        assert result["income"]["shipping_income"] == "25.00"
        assert result["income"]["tax_income"] == "10.00"

    def test_other_tenants_are_invisible(
        self, db: Session, company: Company, other_company: Company, product_a: Product,
    ) -> None:
        make_invoice(
            db, other_company,
            number="INV-X",
            invoice_date=date(2024, 2, 2),
            lines=[(None, 1, Decimal("500"))],
        )
        result = compute_profit_and_loss(db, company.id, START, END)
        assert result["income"]["total_income"] == "0.00"

    def test_idempotent(
        self, db: Session, company: Company, customer: Customer, product_a: Product,
    ) -> None:
        make_invoice(
            db, company,
            number="INV-005",
            invoice_date=date(2024, 7, 7),
            customer=customer,
            lines=[(product_a, 3, Decimal("33.3333"))],
            paid=Decimal("50"),
            status=InvoiceStatus.PARTIALLY_PAID,
        )
        first = compute_profit_and_loss(db, company.id, START, END)
        second = compute_profit_and_loss(db, company.id, START, END)
        assert first == second


# ─── Cash flow ───────────────────────────────────────────────────────────────


class TestCashFlow:
    def test_paid_and_outstanding(
        self, db: Session, company: Company, customer: Customer, product_a: Product,
    ) -> None:
        make_invoice(
            db, company,
            number="INV-010",
            invoice_date=date(2024, 2, 1),
            customer=customer,
            lines=[(product_a, 10, Decimal("90"))],
            paid=Decimal("300"),
            status=InvoiceStatus.PARTIALLY_PAID,
        )
        result = compute_profit_and_loss(db, company.id, START, END)
        cash = result["cash_flow"]
        assert cash["total_invoiced"] == "900.00"
        assert cash["total_paid"] == "300.00"
        assert cash["outstanding_balance"] == "600.00"
        assert cash["invoiced_and_still_outstanding"] == "600.00"
        assert cash["collection_rate"] == "33.33"

    def test_outstanding_semantics_differ_for_old_invoices(
        self, db: Session, company: Company, customer: Customer,
    ) -> None:
        make_invoice(
            db, company,
            number="INV-OLD",
            invoice_date=date(2023, 11, 15),
            customer=customer,
            lines=[(None, 1, Decimal("300"))],
        )
        make_invoice(
            db, company,
            number="INV-NEW",
            invoice_date=date(2024, 1, 15),
            customer=customer,
            lines=[(None, 1, Decimal("200"))],
        )
        cash = compute_profit_and_loss(db, company.id, START, END)["cash_flow"]
        assert cash["outstanding_balance"] == "200.00"
        assert cash["outstanding_as_of"] == "500.00"

    def test_overpaid_invoice_is_reported(
        self, db: Session, company: Company, customer: Customer,
    ) -> None:
        inv = make_invoice(
            db, company,
            number="INV-OVER",
            invoice_date=date(2024, 3, 3),
            customer=customer,
            lines=[(None, 1, Decimal("1000"))],
            paid=Decimal("1200"),
            status=InvoiceStatus.PAID,
        )
        result = compute_profit_and_loss(db, company.id, START, END)
        assert len(result["warnings"]) == 1
        warning = result["warnings"][0]
        assert warning["code"] == "OVERPAID_INVOICE"
        assert warning["invoice_id"] == str(inv.id)
        assert warning["detail"]["balance_due"] == "-200.00"
        # The overpayment is not clamped away
        assert result["cash_flow"]["total_paid"] == "1200.00"


# ─── Windows ─────────────────────────────────────────────────────────────────


class TestReportWindow:
    def test_default_window_is_year_to_date(
        self, db: Session, company: Company,
    ) -> None:
        make_invoice(
            db, company, number="INV-LAST-YEAR", invoice_date=date(2023, 12, 31),
            lines=[(None, 1, Decimal("70"))],
        )
        make_invoice(
            db, company, number="INV-THIS-YEAR", invoice_date=date(2024, 2, 1),
            lines=[(None, 1, Decimal("30"))],
        )
        make_invoice(
            db, company, number="INV-FUTURE", invoice_date=date(2024, 7, 1),
            lines=[(None, 1, Decimal("10"))],
        )
        result = compute_profit_and_loss(db, company.id, today=date(2024, 6, 30))
        assert result["period"] == {"start_date": "2024-01-01", "end_date": "2024-06-30"}
        assert result["income"]["total_income"] == "30.00"

    def test_open_ended_window(self, db: Session, company: Company) -> None:
        make_invoice(
            db, company, number="INV-A", invoice_date=date(2020, 1, 1),
            lines=[(None, 1, Decimal("70"))],
        )
        result = compute_profit_and_loss(db, company.id, end_date=date(2024, 1, 1))
        assert result["period"] == {"start_date": None, "end_date": "2024-01-01"}
        assert result["income"]["total_income"] == "70.00"

    def test_inverted_window_rejected(self, db: Session, company: Company) -> None:
        with pytest.raises(ValidationError):
            compute_profit_and_loss(db, company.id, END, START)

    def test_missing_company_rejected(self, db: Session) -> None:
        with pytest.raises(ValidationError):
            compute_profit_and_loss(db, None, START, END)  # type: ignore[arg-type]

    def test_unknown_company_gives_zeroed_report(self, db: Session) -> None:
        company_id = uuid.uuid4()
        result = compute_profit_and_loss(db, company_id, START, END)
        assert result["company"]["id"] == str(company_id)
        assert result["company"]["name"] is None
        assert result["summary"]["net_profit_loss"] == "0.00"


# ─── Grouped reports ─────────────────────────────────────────────────────────


@pytest.fixture()
def ledger_rows(
    db: Session,
    company: Company,
    customer: Customer,
    customer_b: Customer,
    employee: Employee,
    employee_b: Employee,
    product_a: Product,
    product_b: Product,
) -> None:
    """A small ledger with assigned, unassigned and shrinking stock."""
    make_invoice(
        db, company, number="INV-101", invoice_date=date(2024, 1, 10),
        customer=customer, employee=employee,
        lines=[(product_a, 10, Decimal("90")), (product_b, 1, Decimal("200"))],
        discount=Decimal("50"), tax=Decimal("105"), shipping=Decimal("20"),
        paid=Decimal("1175"), status=InvoiceStatus.PAID,
    )
    make_invoice(
        db, company, number="INV-102", invoice_date=date(2024, 2, 10),
        customer=customer_b, employee=employee_b,
        lines=[(product_b, 2, Decimal("190"))],
        tax=Decimal("57"),
    )
    # No customer and no salesperson
    make_invoice(
        db, company, number="INV-103", invoice_date=date(2024, 3, 10),
        lines=[(product_a, 1, Decimal("90")), (None, 1, Decimal("15"))],
    )
    product_a.manual_count = 47
    db.flush()


class TestGroupedProfitAndLoss:
    @pytest.mark.parametrize("group_by", ["customer", "employee", "product"])
    def test_groups_reconcile_with_ungrouped(
        self, db: Session, company: Company, ledger_rows: None, group_by: str,
    ) -> None:
        flat = compute_profit_and_loss(db, company.id, START, END)
        grouped = compute_profit_and_loss(db, company.id, START, END, group_by=group_by)

        assert grouped["is_consistent"] is True
        assert grouped["group_by"] == group_by
        for section, key in (
            ("profitability", "net_earnings"),
            ("income", "total_income"),
            ("cost_of_sales", "total_cost_of_sales"),
            ("cash_flow", "outstanding_balance"),
        ):
            combined = _sum(grouped["groups"], section, key) + Decimal(
                grouped["unallocated"][section][key]
            )
            assert combined == Decimal(flat[section][key])
            assert grouped["total"][section][key] == flat[section][key]

    def test_customer_groups(
        self, db: Session, company: Company, customer: Customer, ledger_rows: None,
    ) -> None:
        result = compute_profit_and_loss(db, company.id, START, END, group_by=GroupBy.CUSTOMER)
        names = [g["name"] for g in result["groups"]]
        assert names == ["Acme Retail", "Beta Stores"]
        acme = result["groups"][0]
        assert acme["id"] == str(customer.id)
        assert acme["income"]["sales_of_product_income"] == "1100.00"
        assert acme["cost_of_sales"]["cost_of_sales"] == "520.00"
        assert acme["cost_of_sales"]["inventory_shrinkage"] == "0.00"

        unallocated = result["unallocated"]
        assert unallocated["name"] == "Unassigned"
        assert unallocated["income"]["sales_of_product_income"] == "105.00"
        # 3 units missing at cost 40
        assert unallocated["cost_of_sales"]["inventory_shrinkage"] == "120.00"

    def test_inactive_customer_lands_in_unassigned(
        self, db: Session, company: Company, customer_b: Customer, ledger_rows: None,
    ) -> None:
        customer_b.is_active = False
        db.flush()
        result = compute_profit_and_loss(db, company.id, START, END, group_by="customer")
        assert [g["name"] for g in result["groups"]] == ["Acme Retail"]
        assert result["unallocated"]["income"]["sales_of_product_income"] == "485.00"
        assert result["is_consistent"] is True

    def test_product_grouping_leaves_header_amounts_unallocated(
        self, db: Session, company: Company, ledger_rows: None,
    ) -> None:
        result = compute_profit_and_loss(db, company.id, START, END, group_by="product")
        for group in result["groups"]:
            assert group["income"]["shipping_income"] == "0.00"
            assert group["income"]["tax_income"] == "0.00"
        unallocated = result["unallocated"]
        assert unallocated["income"]["shipping_income"] == "20.00"
        assert unallocated["income"]["tax_income"] == "162.00"
        assert unallocated["income"]["discounts_given"] == "-50.00"
        # The product-less line
        assert unallocated["income"]["sales_of_product_income"] == "15.00"

    def test_filter_by_customer(
        self, db: Session, company: Company, customer_b: Customer, ledger_rows: None,
    ) -> None:
        result = compute_profit_and_loss(db, company.id, START, END, customer_id=customer_b.id)
        assert result["customer_id"] == str(customer_b.id)
        assert result["income"]["sales_of_product_income"] == "380.00"
        assert result["summary"]["invoice_count"] == 1

    def test_filter_by_employee(
        self, db: Session, company: Company, employee: Employee, ledger_rows: None,
    ) -> None:
        result = compute_profit_and_loss(db, company.id, START, END, employee_id=employee.id)
        assert result["employee_id"] == str(employee.id)
        assert result["income"]["sales_of_product_income"] == "1100.00"

    @pytest.mark.parametrize("group_by", ["month", "warehouse"])
    def test_unsupported_grouping_rejected(
        self, db: Session, company: Company, group_by: str,
    ) -> None:
        with pytest.raises(ValidationError):
            compute_profit_and_loss(db, company.id, START, END, group_by=group_by)


# ─── Monthly breakdown ───────────────────────────────────────────────────────


class TestMonthlyProfitAndLoss:
    def test_only_active_months(
        self, db: Session, company: Company, ledger_rows: None,
    ) -> None:
        result = compute_monthly_profit_and_loss(db, company.id, 2024)
        assert result["year"] == 2024
        months = [row["month"] for row in result["monthly_breakdown"]]
        assert months == [1, 2, 3]
        january = result["monthly_breakdown"][0]
        assert january["month_name"] == "January"
        assert january["period"] == {"start_date": "2024-01-01", "end_date": "2024-01-31"}
        income = january["income"]
        assert income["sales_of_product_income"] == "1100.00"
        # Two lines on the invoice, shipping counted once
        assert income["shipping_income"] == "20.00"
        assert income["tax_income"] == "105.00"
        assert income["discounts_given"] == "-50.00"
        assert income["other_income"] == "0.00"
        assert income["total_income"] == "1225.00"
        assert income["net_income"] == "1175.00"
        assert january["cost_of_sales"]["cost_of_sales"] == "520.00"
        assert january["expenses"]["total_expenses"] == "0.00"
        assert january["profitability"]["gross_profit"] == "655.00"
        assert january["profitability"]["net_earnings"] == "655.00"
        assert january["cash_flow"]["total_paid"] == "1175.00"
        assert january["summary"]["invoice_count"] == 1

    def test_rows_carry_full_report_sections(
        self, db: Session, company: Company, ledger_rows: None,
    ) -> None:
        january, february, march = compute_monthly_profit_and_loss(
            db, company.id, 2024,
        )["monthly_breakdown"]
        assert january["cash_flow"]["total_invoiced"] == "1225.00"
        assert january["cash_flow"]["outstanding_balance"] == "0.00"
        # 1175 / 1225
        assert january["cash_flow"]["collection_rate"] == "95.92"
        assert february["cash_flow"]["outstanding_balance"] == "437.00"
        assert february["cash_flow"]["outstanding_as_of"] == "437.00"
        assert february["cash_flow"]["collection_rate"] == "0.00"
        # 197 / 437
        assert february["profitability"]["net_profit_margin"] == "45.08"
        assert march["cash_flow"]["outstanding_balance"] == "105.00"

    def test_shrinkage_stays_out_of_monthly_rows(
        self, db: Session, company: Company, ledger_rows: None,
    ) -> None:
        monthly = compute_monthly_profit_and_loss(db, company.id, 2024)
        yearly = compute_profit_and_loss(db, company.id, START, END)
        rows = monthly["monthly_breakdown"]
        assert all(r["cost_of_sales"]["inventory_shrinkage"] == "0.00" for r in rows)

        shrinkage = Decimal(yearly["cost_of_sales"]["inventory_shrinkage"])
        assert shrinkage == Decimal("120.00")
        net_earnings = _sum(rows, "profitability", "net_earnings")
        assert net_earnings == Decimal(yearly["profitability"]["net_earnings"]) + shrinkage
        assert monthly["totals"]["profitability"]["net_earnings"] == "917.00"

    def test_totals_match_yearly_report(
        self, db: Session, company: Company, ledger_rows: None,
    ) -> None:
        monthly = compute_monthly_profit_and_loss(db, company.id, 2024)
        yearly = compute_profit_and_loss(db, company.id, START, END)
        totals = monthly["totals"]
        assert totals["income"] == yearly["income"]
        assert totals["cost_of_sales"]["cost_of_sales"] == yearly["cost_of_sales"]["cost_of_sales"]
        assert totals["cash_flow"]["total_paid"] == yearly["cash_flow"]["total_paid"]
        assert (
            totals["cash_flow"]["outstanding_balance"]
            == yearly["cash_flow"]["outstanding_balance"]
            == "542.00"
        )
        assert totals["summary"]["invoice_count"] == 3

    def test_empty_year(self, db: Session, company: Company) -> None:
        result = compute_monthly_profit_and_loss(db, company.id, 2019)
        assert result["monthly_breakdown"] == []
        assert result["totals"]["profitability"]["gross_profit_margin"] == "0.00"
        assert result["totals"]["summary"]["is_profitable"] is False

    def test_invalid_year_rejected(self, db: Session, company: Company) -> None:
        with pytest.raises(ValidationError):
            compute_monthly_profit_and_loss(db, company.id, 0)

    def test_current_year_by_default(self, db: Session, company: Company) -> None:
        result = compute_monthly_profit_and_loss(db, company.id, today=date(2023, 6, 1))
        assert result["year"] == 2023


# ─── Inventory shrinkage ─────────────────────────────────────────────────────


class TestInventoryShrinkage:
    def test_shrinkage_rows(
        self, db: Session, company: Company, product_a: Product, product_b: Product,
    ) -> None:
        product_a.manual_count = 45
        # Counted more than the system holds: no shrinkage
        product_b.manual_count = 35
        db.flush()
        result = compute_inventory_shrinkage(db, company.id)
        assert result["total_shrinkage"] == "200.00"
        assert len(result["products"]) == 1
        row = result["products"][0]
        assert row["name"] == "Product A"
        assert row["missing_quantity"] == 5
        assert row["shrinkage_value"] == "200.00"

    def test_uncounted_and_inactive_products_skipped(
        self, db: Session, company: Company, product_a: Product, product_b: Product,
    ) -> None:
        product_b.manual_count = 10
        product_b.is_active = False
        db.flush()
        result = compute_inventory_shrinkage(db, company.id)
        assert result["products"] == []
        assert result["total_shrinkage"] == "0.00"

    def test_shrinkage_ignores_report_window(
        self, db: Session, company: Company, product_a: Product,
    ) -> None:
        product_a.manual_count = 49
        db.flush()
        result = compute_profit_and_loss(db, company.id, date(2001, 1, 1), date(2001, 1, 31))
        assert result["cost_of_sales"]["inventory_shrinkage"] == "40.00"
        assert result["profitability"]["gross_profit"] == "-40.00"


# ─── Inventory valuation ─────────────────────────────────────────────────────


class TestInventoryValuation:
    def test_summary_values_stock_at_selling_price(
        self, db: Session, company: Company, product_a: Product, product_b: Product,
    ) -> None:
        result = compute_inventory_valuation_summary(db, company.id)
        assert result["currency"] == "LKR"
        assert [p["name"] for p in result["products"]] == ["Product A", "Product B"]
        assert result["products"][0]["total_value"] == "4500.00"
        assert "cost_value" not in result["products"][0]
        assert result["totals"] == {"total_value": "10500.00", "quantity_on_hand": 80}

    def test_detail_adds_cost_value(
        self, db: Session, company: Company, product_a: Product, product_b: Product,
    ) -> None:
        result = compute_inventory_valuation_detail(db, company.id)
        row_b = result["products"][1]
        assert row_b["cost_price"] == "120.00"
        assert row_b["cost_value"] == "3600.00"
        assert result["totals"]["total_value"] == "10500.00"
        assert result["totals"]["cost_value"] == "5600.00"

    def test_inactive_products_and_other_tenants_excluded(
        self,
        db: Session,
        company: Company,
        other_company: Company,
        product_a: Product,
        product_b: Product,
    ) -> None:
        product_b.is_active = False
        db.add(Product(
            company_id=other_company.id, name="Foreign", unit_price=Decimal("5"),
            quantity_on_hand=1000,
        ))
        db.flush()
        result = compute_inventory_valuation_summary(db, company.id)
        assert [p["name"] for p in result["products"]] == ["Product A"]
        assert result["totals"]["total_value"] == "4500.00"

    def test_not_tied_to_sales(
        self, db: Session, company: Company, ledger_rows: None,
    ) -> None:
        # Valuation reads stock levels only; invoices do not move it
        result = compute_inventory_valuation_detail(db, company.id)
        assert result["totals"]["quantity_on_hand"] == 80


# ─── Data source failures ────────────────────────────────────────────────────


class TestDataSourceFailure:
    def test_read_failure_is_not_a_zero_report(self) -> None:
        broken = Session(bind=create_engine("sqlite:////nonexistent/dir/ledger.db"))
        try:
            with pytest.raises(DataSourceError):
                compute_profit_and_loss(broken, uuid.uuid4(), START, END)
            with pytest.raises(UnavailableError):
                compute_inventory_shrinkage(broken, uuid.uuid4())
        finally:
            broken.close()
