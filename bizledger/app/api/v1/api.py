from fastapi import APIRouter

from bizledger.app.api.v1.endpoints import reports

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(reports.router, prefix="/reports", tags=["reports"])
