"""
Bank statement parsing: CSV and simplified OFX exports.

Both formats are normalised into schemas.BankTransaction rows that the
reconciliation engine consumes once, in file order.
"""
import logging
import uuid
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

import pandas as pd

from models import utcnow
from schemas import BankTransaction

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("csv", "ofx")

# Date given to OFX rows whose DTPOSTED is missing or unreadable
UNSET_DATE = datetime(1, 1, 1)

_CSV_MIN_FIELDS = 5


class ParseError(Exception):
    """Raised when a statement file cannot be read at all."""


class UnsupportedFormatError(ParseError):
    """Raised for a format name other than csv / ofx."""


def normalize_format(fmt: str) -> str:
    name = (fmt or "").strip().lower()
    if name not in SUPPORTED_FORMATS:
        raise UnsupportedFormatError(f"Unsupported format: {fmt}")
    return name


def _new_transaction_id() -> str:
    return str(uuid.uuid4())


def _decode(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ParseError(f"Statement is not valid UTF-8 text: {e}") from e


# ── Field parsing ─────────────────────────────────────────────────────────────

def _parse_amount(val: str) -> Decimal:
    """'150.00' → Decimal('150.00'); anything unreadable → 0."""
    try:
        amount = Decimal(val.strip())
    except InvalidOperation:
        return Decimal("0")
    return amount if amount.is_finite() else Decimal("0")


def _parse_date(val: str) -> Optional[datetime]:
    ts = pd.to_datetime(val.strip(), errors="coerce")
    if pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC").tz_localize(None)
    # outside pandas' nanosecond range (1677-2262) counts as unreadable
    if not pd.Timestamp.min <= ts <= pd.Timestamp.max:
        return None
    return ts.to_pydatetime()


def _parse_ofx_date(val: str) -> datetime:
    try:
        return datetime.strptime(val, "%Y%m%d")
    except ValueError:
        return UNSET_DATE


# ── CSV ───────────────────────────────────────────────────────────────────────

def parse_csv(data: bytes) -> list[BankTransaction]:
    """
    Header line first, then one transaction per line:
        id, date, description, amount, reference[, account number]
    Values are split on plain commas. Lines with fewer than five fields are
    skipped without error.
    """
    lines = _decode(data).splitlines()
    transactions: list[BankTransaction] = []
    skipped = 0

    for line in lines[1:]:
        fields = line.split(",")
        if len(fields) < _CSV_MIN_FIELDS:
            skipped += 1
            continue

        tx_date = _parse_date(fields[1])
        transactions.append(BankTransaction(
            transaction_id=fields[0].strip() or _new_transaction_id(),
            transaction_date=tx_date if tx_date is not None else utcnow(),
            description=fields[2].strip(),
            amount=_parse_amount(fields[3]),
            reference=fields[4].strip(),
            account_number=fields[5].strip() if len(fields) > 5 else "",
        ))

    logger.info(f"CSV statement parsed: {len(transactions)} rows, {skipped} skipped")
    return transactions


# ── OFX ───────────────────────────────────────────────────────────────────────

def _tag_value(line: str, tag: str) -> str:
    return line[len(tag) + 2:].replace(f"</{tag}>", "").strip()


def parse_ofx(data: bytes) -> list[BankTransaction]:
    """
    Minimal OFX/SGML reader. Only <STMTTRN> blocks are read; inside a block
    TRNTYPE is the description, DTPOSTED the date (yyyymmdd), TRNAMT the
    amount (sign dropped), FITID the id and MEMO the reference.
    """
    transactions: list[BankTransaction] = []
    account_number = ""
    block: Optional[dict] = None

    for raw in _decode(data).splitlines():
        line = raw.strip()

        if block is None:
            if line.startswith("<ACCTID>"):
                account_number = _tag_value(line, "ACCTID")
            elif line.startswith("<STMTTRN>"):
                block = {
                    "transaction_date": UNSET_DATE,
                    "amount": Decimal("0"),
                    "account_number": account_number,
                }
            continue

        if line.startswith("</STMTTRN>"):
            if not block.get("transaction_id"):
                block["transaction_id"] = _new_transaction_id()
            transactions.append(BankTransaction(**block))
            block = None
        elif line.startswith("<TRNTYPE>"):
            block["description"] = _tag_value(line, "TRNTYPE")
        elif line.startswith("<DTPOSTED>"):
            block["transaction_date"] = _parse_ofx_date(_tag_value(line, "DTPOSTED"))
        elif line.startswith("<TRNAMT>"):
            block["amount"] = abs(_parse_amount(_tag_value(line, "TRNAMT")))
        elif line.startswith("<FITID>"):
            block["transaction_id"] = _tag_value(line, "FITID")
        elif line.startswith("<MEMO>"):
            block["reference"] = _tag_value(line, "MEMO")

    if block is not None:
        raise ParseError("OFX statement ends inside an unclosed <STMTTRN> block")

    logger.info(f"OFX statement parsed: {len(transactions)} rows")
    return transactions


def parse_statement(data: bytes, fmt: str) -> list[BankTransaction]:
    name = normalize_format(fmt)
    if name == "csv":
        return parse_csv(data)
    return parse_ofx(data)
