import os
from decimal import Decimal
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent.parent

DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE_DIR}/reconciliation.db")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:4200,http://localhost:3000").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# ── Matching ─────────────────────────────────────────────────────────────────
MIN_MATCH_SCORE    = Decimal(os.getenv("MIN_MATCH_SCORE", "0.5"))
AUTO_APPROVE_SCORE = Decimal(os.getenv("AUTO_APPROVE_SCORE", "0.9"))
CANDIDATE_WINDOW_DAYS = int(os.getenv("CANDIDATE_WINDOW_DAYS", "30"))

# ── Reporting ────────────────────────────────────────────────────────────────
CURRENCY_SYMBOL = os.getenv("CURRENCY_SYMBOL", "K")  # Zambian kwacha

# Actor recorded on imports and sweeps that no human started
SYSTEM_ACTOR = os.getenv("SYSTEM_ACTOR", "system")
