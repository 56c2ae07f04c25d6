"""Pytest fixtures for testing"""

import pytest
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, Generator, List, Optional
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from chargeback_engine.api.main import create_app
from chargeback_engine.api.dependencies import get_card_network_gateway, get_ledger_client
from chargeback_engine.domain.exceptions import CardNetworkError, CreditLedgerError
from chargeback_engine.domain.models import Actor, EvidenceItem, Transaction
from chargeback_engine.infrastructure.database.models import Base, DisputeRecord, TransactionRecord
from chargeback_engine.infrastructure.database.repositories import DisputeRepository, TransactionRepository
from chargeback_engine.infrastructure.database.session import get_db, get_session_factory
from chargeback_engine.utils.date_utils import utc_now


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

ADMIN = Actor(actor_id="admin_42", role="bank_admin")
ADMIN_HEADERS = {"X-Actor-Id": "admin_42", "X-Actor-Role": "bank_admin"}


class FakeLedgerClient:
    """Records ledger events instead of sending them"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.events: List[Dict[str, Any]] = []

    async def _send(self, event: str, payload: Dict[str, Any], idempotency_key: str) -> Optional[str]:
        if self.fail:
            raise CreditLedgerError(f"Ledger rejected {event} after 5 attempts")
        self.events.append({"event": event, "payload": payload, "idempotency_key": idempotency_key})
        return f"ledger-{len(self.events)}"

    async def issue_temporary_credit(self, payload, idempotency_key):
        return await self._send("TEMP_CREDIT_ISSUED", payload, idempotency_key)

    async def issue_permanent_credit(self, payload, idempotency_key):
        return await self._send("PERMANENT_CREDIT_ISSUED", payload, idempotency_key)

    async def reverse_temporary_credit(self, payload, idempotency_key):
        return await self._send("TEMP_CREDIT_REVERSED", payload, idempotency_key)


class FakeCardNetworkGateway:
    """Records network filings instead of sending them"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.filings: List[Dict[str, Any]] = []

    async def _file(self, kind: str, payload: Dict[str, Any], idempotency_key: str) -> Optional[str]:
        if self.fail:
            raise CardNetworkError(f"Network unavailable for {kind}")
        self.filings.append({"kind": kind, "payload": payload, "idempotency_key": idempotency_key})
        return f"case-{len(self.filings)}"

    async def file_chargeback(self, payload, idempotency_key):
        return await self._file("chargeback", payload, idempotency_key)

    async def file_prearbitration(self, payload, idempotency_key):
        return await self._file("prearbitration", payload, idempotency_key)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db: Session):
    """Session factory bound to the test database (tables created by `db`)"""
    return TestingSessionLocal


@pytest.fixture
def fake_ledger() -> FakeLedgerClient:
    return FakeLedgerClient()


@pytest.fixture
def fake_network() -> FakeCardNetworkGateway:
    return FakeCardNetworkGateway()


@pytest.fixture
def failing_ledger() -> FakeLedgerClient:
    return FakeLedgerClient(fail=True)


@pytest.fixture
def failing_network() -> FakeCardNetworkGateway:
    return FakeCardNetworkGateway(fail=True)


@pytest.fixture
def client(db: Session, fake_ledger: FakeLedgerClient, fake_network: FakeCardNetworkGateway) -> TestClient:
    """Create FastAPI test client with test database and fake external clients"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    app.dependency_overrides[get_ledger_client] = lambda: fake_ledger
    app.dependency_overrides[get_card_network_gateway] = lambda: fake_network
    return TestClient(app)


@pytest.fixture
def admin() -> Actor:
    return ADMIN


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return dict(ADMIN_HEADERS)


def _default_transaction_fields() -> Dict[str, Any]:
    """Settled $200 USD chip purchase from 25 days ago"""
    now = utc_now()
    return dict(
        customer_id="cust_001",
        transaction_time=now - timedelta(days=25),
        transaction_amount=Decimal("200.00"),
        transaction_currency="USD",
        local_transaction_amount=Decimal("200.00"),
        local_transaction_currency="USD",
        merchant_name="Acme Outdoor Supply",
        merchant_category_code=5999,
        acquirer_name="Visa Acquiring Services",
        pos_entry_mode=5,
        secured_indication=None,
        is_wallet_transaction=False,
        wallet_type=None,
        settled=True,
        settlement_date=now - timedelta(days=24),
        refund_received=False,
        refund_amount=None,
    )


@pytest.fixture
def make_transaction():
    """Build an in-memory domain Transaction with overrides"""

    def _build(transaction_id: str = "tx_test", **overrides) -> Transaction:
        fields = _default_transaction_fields()
        fields.update(overrides)
        return Transaction(transaction_id=transaction_id, **fields)

    return _build


@pytest.fixture
def transaction_factory(db: Session):
    """Persist a transaction row with overrides"""

    def _create(**overrides) -> TransactionRecord:
        fields = _default_transaction_fields()
        fields.update(overrides)
        tx = TransactionRepository(db).add(**fields)
        db.commit()
        return tx

    return _create


@pytest.fixture
def dispute_factory(db: Session):
    """Persist a dispute for a transaction"""

    def _create(tx: TransactionRecord, reason_code: str = "NOT_RECEIVED", custom_reason: Optional[str] = None) -> DisputeRecord:
        dispute = DisputeRepository(db).add(
            transaction_id=tx.id,
            customer_id=tx.customer_id,
            reason_code=reason_code,
            custom_reason=custom_reason,
            status="open",
        )
        db.commit()
        return dispute

    return _create


@pytest.fixture
def not_received_evidence():
    """Valid invoice and tracking proof"""
    return [
        EvidenceItem(key="invoice", is_valid=True),
        EvidenceItem(key="tracking_proof", is_valid=True),
    ]
