import os

# keep the app module from touching a real database file on import
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: register tables
from database import Base, enable_sqlite_savepoints, get_db
from models import Customer, PaymentTransaction, ReconciliationRecord, UnmatchedBankTransaction, new_id

TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    from fastapi.testclient import TestClient
    from main import app

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_payment(db):
    """Insert a committed payment transaction and return it."""
    def _make(
        amount="150.00",
        transaction_date=datetime(2024, 1, 10),
        reference="",
        status="completed",
        tenant_id=TENANT,
        customer=("Mwila", "Banda", "mwila@example.com"),
        is_reconciled=False,
    ):
        payment = PaymentTransaction(
            id=new_id(),
            tenant_id=tenant_id,
            amount=Decimal(amount),
            transaction_date=transaction_date,
            transaction_reference=reference,
            status=status,
            is_reconciled=is_reconciled,
        )
        if customer:
            first, last, email = customer
            payment.customer = Customer(tenant_id=tenant_id, first_name=first, last_name=last, email=email)
        db.add(payment)
        db.commit()
        return payment
    return _make


@pytest.fixture
def make_unmatched(db):
    def _make(
        amount="150.00",
        transaction_date=datetime(2024, 1, 10),
        reference="",
        description="",
        transaction_id=None,
        tenant_id=TENANT,
    ):
        row = UnmatchedBankTransaction(
            id=new_id(),
            tenant_id=tenant_id,
            transaction_id=transaction_id or new_id(),
            transaction_date=transaction_date,
            description=description,
            amount=Decimal(amount),
            reference=reference,
            account_number="",
            imported_by="tester",
        )
        db.add(row)
        db.commit()
        return row
    return _make


@pytest.fixture
def make_record(db):
    def _make(
        payment,
        bank_amount="150.00",
        status="pending_approval",
        reconciled_at=datetime(2024, 1, 11, 9, 30),
        bank_transaction_id="BANK-1",
        tenant_id=TENANT,
    ):
        bank_amount = Decimal(bank_amount)
        record = ReconciliationRecord(
            id=new_id(),
            tenant_id=tenant_id,
            bank_transaction_id=bank_transaction_id,
            payment_transaction_id=payment.id,
            match_type="amount;date",
            match_score=0.6,
            status=status,
            notes="",
            reconciled_by="tester",
            reconciled_at=reconciled_at,
            bank_amount=bank_amount,
            payment_amount=payment.amount,
            difference=abs(bank_amount - payment.amount),
        )
        db.add(record)
        db.commit()
        return record
    return _make
