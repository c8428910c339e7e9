import pytest
import os
from decimal import Decimal
from fastapi import Depends
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker

from fieldledger.main import app
from fieldledger.db.session import get_db
from fieldledger.db.base import Base
from fieldledger.core.rate_limit import rate_limited
from fieldledger.core.security import Actor, create_access_token, get_current_actor
from fieldledger.core.enums import UserRole, OrderStatus, AccountKind
from fieldledger.services import notifier, lifecycle, ledger
from fieldledger.services.crews import register_crew
from fieldledger.services.settlement import finalize_order


OWNER_ID = 1
ADMIN_ID = 2
MANAGER_ID = 3


@pytest.fixture
async def engine(tmp_path):
    url = os.getenv("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'fieldledger.db'}"
    test_engine = create_async_engine(url, echo=False, future=True)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        future=True
    )


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def other_db(session_factory):
    """A second, independent session for interleaving tests."""
    async with session_factory() as session:
        yield session


class NotificationRecorder:
    def __init__(self):
        self.sent = []

    def __call__(self, recipient_id, event, payload):
        self.sent.append((recipient_id, event, payload))

    def events(self):
        return [event for _, event, _ in self.sent]

    def for_event(self, event):
        return [(recipient, payload) for recipient, e, payload in self.sent if e == event]


@pytest.fixture(autouse=True)
def notifications(monkeypatch):
    recorder = NotificationRecorder()
    monkeypatch.setattr(notifier, "dispatch", recorder)
    return recorder



@pytest.fixture
def owner():
    return Actor(id=OWNER_ID, role=UserRole.OWNER)


@pytest.fixture
def manager():
    return Actor(id=MANAGER_ID, role=UserRole.MANAGER)


@pytest.fixture
def crew_factory(db):
    counter = {"n": 0}

    async def _create_crew(name=None, lead_actor_id=None, profit_share=Decimal("40")):
        counter["n"] += 1
        n = counter["n"]
        crew, _ = await register_crew(
            db,
            name or f"Crew {n}",
            lead_actor_id if lead_actor_id is not None else 100 + n,
            profit_share,
            actor_id=OWNER_ID,
        )
        return crew

    return _create_crew


@pytest.fixture
async def cash_account(db):
    return await ledger.open_account(db, "Main cash", AccountKind.COMPANY_CASH, actor_id=OWNER_ID)


@pytest.fixture
def order_factory(db, owner):
    """Create an order and walk it to the requested status."""

    async def _create_order(final_price=Decimal("1000"), crew=None, status=OrderStatus.NEW):
        order = await lifecycle.create_order(db, final_price, client_name="Test client", actor_id=OWNER_ID)
        if status == OrderStatus.NEW:
            return order
        if status == OrderStatus.CANCELED:
            return await lifecycle.transition(db, order.id, owner, OrderStatus.CANCELED)

        order = await lifecycle.claim(db, order.id, crew.id)
        if status in (OrderStatus.WORK, OrderStatus.DONE):
            order = await lifecycle.transition(db, order.id, owner, OrderStatus.WORK)
        if status == OrderStatus.DONE:
            await finalize_order(db, order.id, actor_id=OWNER_ID)
            await db.refresh(order)
        return order

    return _create_order



@pytest.fixture
def owner_token():
    return create_access_token(str(OWNER_ID), UserRole.OWNER)


@pytest.fixture
def admin_token():
    return create_access_token(str(ADMIN_ID), UserRole.ADMIN)


@pytest.fixture
def manager_token():
    return create_access_token(str(MANAGER_ID), UserRole.MANAGER)


@pytest.fixture
def crew_token():
    def _token(crew):
        return create_access_token(str(crew.lead_actor_id), UserRole.CREW, crew_id=crew.id)
    return _token


@pytest.fixture
def headers():
    def _headers(token):
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_rate_limited(actor: Actor = Depends(get_current_actor)):
        return actor

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[rate_limited] = override_rate_limited
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client
    app.dependency_overrides.clear()



def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
    config.addinivalue_line(
        "markers", "ledger: marks tests related to the account ledger"
    )
    config.addinivalue_line(
        "markers", "settlement: marks tests related to order settlement"
    )
    config.addinivalue_line(
        "markers", "incassation: marks tests related to cash handover"
    )
    config.addinivalue_line(
        "markers", "lifecycle: marks tests related to the order state machine"
    )
    config.addinivalue_line(
        "markers", "api: marks tests that go through the HTTP layer"
    )
