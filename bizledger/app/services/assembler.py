"""Shapes raw report figures into response dicts.

Everything upstream works on full-precision ``Decimal`` values. This module
is the only place where amounts are rounded, and it rounds each output field
exactly once: grand totals are built by summing raw values, never by adding
up already-rounded strings.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from bizledger.app.core.config import settings
from bizledger.app.models.company import Company

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
UNASSIGNED = "Unassigned"


def _exponent() -> Decimal:
    return Decimal(1).scaleb(-settings.MONEY_DECIMAL_PLACES)


def quantize(value: Decimal) -> Decimal:
    q = Decimal(value).quantize(_exponent(), rounding=ROUND_HALF_UP)
    # Avoid rendering "-0.00"
    return q.copy_abs() if q.is_zero() else q


def money(value: Decimal | None) -> str:
    """Fixed-point decimal string, e.g. ``"1250.50"``."""
    return str(quantize(value if value is not None else ZERO))


def ratio(numerator: Decimal, denominator: Decimal) -> Decimal:
    """Percentage of ``numerator`` over ``denominator``; 0 when the base is 0."""
    if not denominator:
        return ZERO
    return numerator / denominator * HUNDRED


def render(value: object) -> object:
    """Recursively round every ``Decimal`` in a nested structure to a string."""
    if isinstance(value, Decimal):
        return money(value)
    if isinstance(value, Mapping):
        return {k: render(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [render(v) for v in value]
    if isinstance(value, UUID):
        return str(value)
    return value


# ── Report metadata ──────────────────────────────────────────────────────────


def currency_for(company: Company | None) -> str:
    if company is not None and company.currency_code:
        return company.currency_code
    return settings.DEFAULT_CURRENCY


def company_block(company: Company | None, company_id: UUID) -> dict[str, object]:
    if company is None:
        return {"id": str(company_id), "name": None, "address": None, "email": None, "phone": None}
    return {
        "id": str(company.id),
        "name": company.name,
        "address": company.address,
        "email": company.email,
        "phone": company.phone,
    }


def payment_warnings(violations: Iterable[Mapping[str, object]]) -> list[dict[str, object]]:
    """Render overpayment findings; they are reported, never clamped away."""
    warnings: list[dict[str, object]] = []
    for v in violations:
        logger.warning(
            "Invoice %s is overpaid: total=%s paid=%s payments=%s",
            v["invoice_number"], v["total_amount"], v["paid_amount"], v["payments_total"],
        )
        warnings.append({
            "code": "OVERPAID_INVOICE",
            "invoice_id": str(v["invoice_id"]),
            "invoice_number": v["invoice_number"],
            "detail": render({
                "total_amount": v["total_amount"],
                "paid_amount": v["paid_amount"],
                "payments_total": v["payments_total"],
                "balance_due": v["balance_due"],
            }),
        })
    return warnings


# ── Totals ───────────────────────────────────────────────────────────────────


def totals_row(
    rows: Iterable[Mapping[str, object]], keys: Iterable[str],
) -> dict[str, Decimal]:
    """Column sums of raw per-row values."""
    keys = list(keys)
    totals: dict[str, Decimal] = {k: ZERO for k in keys}
    for row in rows:
        for k in keys:
            totals[k] += row[k]  # type: ignore[operator]
    return totals


def check_totals(
    label: str,
    combined: Mapping[str, Decimal],
    reference: Mapping[str, Decimal],
) -> list[str]:
    """Compare raw figures built two ways; returns the names that disagree."""
    mismatched = [k for k in reference if combined.get(k, ZERO) != reference[k]]
    if mismatched:
        logger.warning(
            "%s: grouped totals do not reconcile with the ungrouped figures (%s)",
            label, ", ".join(mismatched),
        )
    return mismatched


def sort_key(name: str | None, key: object) -> tuple[int, str, str]:
    """Stable ordering of dimension rows: named rows by name, unnamed last."""
    return (1 if name is None else 0, (name or "").lower(), str(key))
