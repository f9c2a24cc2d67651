from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from bizledger.app.core.database import get_db
from bizledger.app.core.errors import DataSourceError, NotFoundError, ValidationError
from bizledger.app.schemas.aging import ARAgingDetailResponse, ARAgingResponse, OpenInvoiceOut
from bizledger.app.schemas.reports import (
    CommissionDetailResponse,
    CommissionReportResponse,
    InventoryShrinkageResponse,
    InventoryValuationDetailResponse,
    InventoryValuationResponse,
    MonthlyProfitAndLossResponse,
    ProfitAndLossResponse,
)
from bizledger.app.schemas.sales import (
    CustomerIncomeResponse,
    CustomerSalesDetailResponse,
    CustomerSalesResponse,
    EmployeeSalesDetailResponse,
    EmployeeSalesResponse,
    ProductSalesDetailResponse,
    ProductSalesResponse,
)
from bizledger.app.services.aging import (
    compute_ar_aging,
    compute_ar_aging_detail,
    list_customer_open_invoices,
)
from bizledger.app.services.commission import (
    compute_commission_detail,
    compute_commission_report,
)
from bizledger.app.services.profit_loss import (
    compute_inventory_shrinkage,
    compute_inventory_valuation_detail,
    compute_inventory_valuation_summary,
    compute_monthly_profit_and_loss,
    compute_profit_and_loss,
)
from bizledger.app.services.sales import (
    income_by_customer_summary,
    sales_by_customer_detail,
    sales_by_customer_summary,
    sales_by_employee_detail,
    sales_by_employee_summary,
    sales_by_product_detail,
    sales_by_product_summary,
)

router = APIRouter()

SERVICE_UNAVAILABLE = "Report data is temporarily unavailable"


# ── Profit & Loss ───────────────────────────────────────────────────────────


@router.get(
    "/profit-and-loss/{company_id}",
    response_model=ProfitAndLossResponse,
    response_model_exclude_unset=True,
)
def profit_and_loss(
    company_id: UUID,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    group_by: str | None = Query(None, description="customer, employee or product"),
    db: Session = Depends(get_db),
) -> dict[str, object]:
    try:
        return compute_profit_and_loss(db, company_id, start_date, end_date, group_by=group_by)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DataSourceError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=SERVICE_UNAVAILABLE)


@router.get(
    "/profit-and-loss/{company_id}/customers/{customer_id}",
    response_model=ProfitAndLossResponse,
    response_model_exclude_unset=True,
)
def profit_and_loss_by_customer(
    company_id: UUID,
    customer_id: UUID,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: Session = Depends(get_db),
) -> dict[str, object]:
    try:
        return compute_profit_and_loss(
            db, company_id, start_date, end_date, customer_id=customer_id,
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DataSourceError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=SERVICE_UNAVAILABLE)


@router.get(
    "/profit-and-loss/{company_id}/employees/{employee_id}",
    response_model=ProfitAndLossResponse,
    response_model_exclude_unset=True,
)
def profit_and_loss_by_employee(
    company_id: UUID,
    employee_id: UUID,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: Session = Depends(get_db),
) -> dict[str, object]:
    try:
        return compute_profit_and_loss(
            db, company_id, start_date, end_date, employee_id=employee_id,
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DataSourceError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=SERVICE_UNAVAILABLE)


@router.get(
    "/monthly-profit-and-loss/{company_id}",
    response_model=MonthlyProfitAndLossResponse,
)
def monthly_profit_and_loss(
    company_id: UUID,
    year: int | None = Query(None),
    db: Session = Depends(get_db),
) -> dict[str, object]:
    try:
        return compute_monthly_profit_and_loss(db, company_id, year)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DataSourceError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=SERVICE_UNAVAILABLE)


@router.get(
    "/inventory-shrinkage/{company_id}",
    response_model=InventoryShrinkageResponse,
)
def inventory_shrinkage(
    company_id: UUID,
    db: Session = Depends(get_db),
) -> dict[str, object]:
    try:
        return compute_inventory_shrinkage(db, company_id)
    except DataSourceError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=SERVICE_UNAVAILABLE)


@router.get(
    "/inventory-valuation/{company_id}",
    response_model=InventoryValuationResponse,
    response_model_exclude_unset=True,
)
def inventory_valuation(
    company_id: UUID,
    db: Session = Depends(get_db),
) -> dict[str, object]:
    try:
        return compute_inventory_valuation_summary(db, company_id)
    except DataSourceError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=SERVICE_UNAVAILABLE)


@router.get(
    "/inventory-valuation/{company_id}/detail",
    response_model=InventoryValuationDetailResponse,
)
def inventory_valuation_detail(
    company_id: UUID,
    db: Session = Depends(get_db),
) -> dict[str, object]:
    try:
        return compute_inventory_valuation_detail(db, company_id)
    except DataSourceError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=SERVICE_UNAVAILABLE)


# ── A/R Aging ───────────────────────────────────────────────────────────────


@router.get("/ar-aging/{company_id}", response_model=ARAgingResponse)
def ar_aging(
    company_id: UUID,
    as_of_date: date | None = Query(None),
    db: Session = Depends(get_db),
) -> dict[str, object]:
    try:
        return compute_ar_aging(db, company_id, as_of_date)
    except DataSourceError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=SERVICE_UNAVAILABLE)


@router.get(
    "/ar-aging/{company_id}/customers/{customer_id}",
    response_model=ARAgingDetailResponse,
)
def ar_aging_detail(
    company_id: UUID,
    customer_id: UUID,
    as_of_date: date | None = Query(None),
    db: Session = Depends(get_db),
) -> dict[str, object]:
    try:
        return compute_ar_aging_detail(db, company_id, customer_id, as_of_date)
    except DataSourceError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=SERVICE_UNAVAILABLE)


@router.get(
    "/customer-invoices/{company_id}/{customer_id}",
    response_model=list[OpenInvoiceOut],
)
def customer_open_invoices(
    company_id: UUID,
    customer_id: UUID,
    db: Session = Depends(get_db),
) -> list[dict]:
    try:
        return list_customer_open_invoices(db, company_id, customer_id)
    except DataSourceError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=SERVICE_UNAVAILABLE)


# ── Commission ──────────────────────────────────────────────────────────────


@router.get("/commission", response_model=CommissionReportResponse)
def commission_report(
    company_id: UUID | None = Query(None),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: Session = Depends(get_db),
) -> dict[str, object]:
    try:
        return compute_commission_report(db, company_id, start_date, end_date)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DataSourceError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=SERVICE_UNAVAILABLE)


@router.get("/commission/{employee_id}", response_model=CommissionDetailResponse)
def commission_detail(
    employee_id: UUID,
    company_id: UUID | None = Query(None),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: Session = Depends(get_db),
) -> dict[str, object]:
    try:
        return compute_commission_detail(
            db, employee_id, start_date, end_date, company_id=company_id,
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except DataSourceError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=SERVICE_UNAVAILABLE)


# ── Sales & Income ──────────────────────────────────────────────────────────


@router.get("/sales/{company_id}/by-customer", response_model=CustomerSalesResponse)
def sales_by_customer(
    company_id: UUID,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: Session = Depends(get_db),
) -> dict[str, object]:
    try:
        return sales_by_customer_summary(db, company_id, start_date, end_date)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DataSourceError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=SERVICE_UNAVAILABLE)


@router.get("/sales/{company_id}/by-employee", response_model=EmployeeSalesResponse)
def sales_by_employee(
    company_id: UUID,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: Session = Depends(get_db),
) -> dict[str, object]:
    try:
        return sales_by_employee_summary(db, company_id, start_date, end_date)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DataSourceError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=SERVICE_UNAVAILABLE)


@router.get("/sales/{company_id}/by-product", response_model=ProductSalesResponse)
def sales_by_product(
    company_id: UUID,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: Session = Depends(get_db),
) -> dict[str, object]:
    try:
        return sales_by_product_summary(db, company_id, start_date, end_date)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DataSourceError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=SERVICE_UNAVAILABLE)


@router.get("/income/{company_id}/by-customer", response_model=CustomerIncomeResponse)
def income_by_customer(
    company_id: UUID,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: Session = Depends(get_db),
) -> dict[str, object]:
    try:
        return income_by_customer_summary(db, company_id, start_date, end_date)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DataSourceError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=SERVICE_UNAVAILABLE)


@router.get("/sales/{company_id}/by-customer/detail", response_model=CustomerSalesDetailResponse)
def sales_by_customer_detail_report(
    company_id: UUID,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    customer_id: UUID | None = Query(None),
    db: Session = Depends(get_db),
) -> dict[str, object]:
    try:
        return sales_by_customer_detail(
            db, company_id, start_date, end_date, customer_id=customer_id,
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DataSourceError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=SERVICE_UNAVAILABLE)


@router.get("/sales/{company_id}/by-employee/detail", response_model=EmployeeSalesDetailResponse)
def sales_by_employee_detail_report(
    company_id: UUID,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    employee_id: UUID | None = Query(None),
    db: Session = Depends(get_db),
) -> dict[str, object]:
    try:
        return sales_by_employee_detail(
            db, company_id, start_date, end_date, employee_id=employee_id,
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DataSourceError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=SERVICE_UNAVAILABLE)


@router.get("/sales/{company_id}/by-product/detail", response_model=ProductSalesDetailResponse)
def sales_by_product_detail_report(
    company_id: UUID,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    product_id: UUID | None = Query(None),
    db: Session = Depends(get_db),
) -> dict[str, object]:
    try:
        return sales_by_product_detail(
            db, company_id, start_date, end_date, product_id=product_id,
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DataSourceError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=SERVICE_UNAVAILABLE)
