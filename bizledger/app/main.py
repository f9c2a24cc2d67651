import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bizledger.app.api.v1.api import api_router
from bizledger.app.core.config import settings

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = FastAPI(title="BizLedger Financial Reports")

# ─── CORS: restrict to configured origins ────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["Authorization", "Content-Type", "Accept"],
)

app.include_router(api_router)
