"""Error kinds raised by the reporting services.

Endpoints translate them to HTTP responses:

* ``ValidationError`` → 400 (caller-fixable input problem)
* ``NotFoundError`` → 404
* ``DataSourceError`` → 503 (the ledger read failed; never masked as zeros)
"""
from __future__ import annotations


class ReportError(Exception):
    """Base class for every reporting failure."""


class ValidationError(ReportError, ValueError):
    """Missing or invalid company id, employee id or date range."""


class NotFoundError(ReportError, LookupError):
    """The requested entity does not exist for the company."""


class DataSourceError(ReportError, RuntimeError):
    """A read against the ledger store failed."""


UnavailableError = DataSourceError
