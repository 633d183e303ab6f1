from dotenv import load_dotenv
load_dotenv()  # loads apps/api/.env → DATABASE_URL, thresholds, CURRENCY_SYMBOL

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import AUTO_APPROVE_SCORE, CORS_ORIGINS, LOG_LEVEL, MIN_MATCH_SCORE
from database import engine, Base
import models  # noqa: ensure all models are registered before create_all

from routers import bank_accounts, payments, reconciliation
from statement_parser import SUPPORTED_FORMATS

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

# Create all tables on startup
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Payment Reconciliation API",
    description="Bank statement import and matching against recorded pharmacy payments",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(reconciliation.router)
app.include_router(bank_accounts.router)
app.include_router(payments.router)


@app.get("/health")
def health():
    return {
        "status": "ok",
        "matching": {
            "min_score": float(MIN_MATCH_SCORE),
            "auto_approve_score": float(AUTO_APPROVE_SCORE),
        },
        "supported_formats": {
            "statements": [f.upper() for f in SUPPORTED_FORMATS],
        },
    }
