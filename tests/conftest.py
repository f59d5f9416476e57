import os

os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ["DB_TYPE"] = "sqlite"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./finedine-test.db")

from datetime import date, timedelta
from types import SimpleNamespace

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.db import build_engine, get_db, init_models
from app.core.security import create_access_token
from app.models.deal_models import Deal
from app.models.restaurant_models import Restaurant
from app.models.user_models import User, Favorite
from app.schemas.auth_schemas import CallerContext, CUSTOMER, RESTAURANT_OWNER
from main import app


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'finedine.db'}", "sqlite")
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, autoflush=False, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def world(session_factory):
    """Two restaurants with owners, three customers. Only ids leave the seeding session."""
    async with session_factory() as session:
        bistro = Restaurant(name="Bistro Uno", logo="https://img.test/uno.png")
        grill = Restaurant(name="Grill Dos")
        session.add_all([bistro, grill])
        await session.flush()

        owner = User(name="Olivia Owner", email="owner@bistro.test", role=RESTAURANT_OWNER, restaurant_id=bistro.id)
        rival = User(name="Ray Rival", email="owner@grill.test", role=RESTAURANT_OWNER, restaurant_id=grill.id)
        alice = User(name="Alice", email="alice@test.test", phone="555-0101")
        bob = User(name="Bob", email="bob@test.test", phone="555-0102")
        carol = User(name="Carol", email="carol@test.test")
        session.add_all([owner, rival, alice, bob, carol])
        await session.flush()

        # Alice and Bob follow the bistro, Carol follows the grill
        session.add_all([
            Favorite(user_id=alice.id, restaurant_id=bistro.id),
            Favorite(user_id=bob.id, restaurant_id=bistro.id),
            Favorite(user_id=carol.id, restaurant_id=grill.id),
        ])
        await session.commit()

        def customer(user):
            return CallerContext(user_id=user.id, role=CUSTOMER)

        def restaurant_owner(user):
            return CallerContext(user_id=user.id, role=RESTAURANT_OWNER, restaurant_id=user.restaurant_id)

        return SimpleNamespace(
            bistro_id=bistro.id,
            grill_id=grill.id,
            owner=restaurant_owner(owner),
            rival=restaurant_owner(rival),
            alice=customer(alice),
            bob=customer(bob),
            carol=customer(carol),
        )


@pytest.fixture
def make_deal(session_factory):
    async def _make_deal(restaurant_id, **overrides):
        fields = dict(
            restaurant_id=restaurant_id,
            restaurant_name="Bistro Uno",
            title="Half price pasta",
            description="All pasta dishes",
            discount_percent=50,
            offer_type="both",
            max_coupons=10,
            claimed_coupons=0,
            valid_till=date.today() + timedelta(days=7),
            is_active=True,
            activation_count=1,
        )
        fields.update(overrides)
        async with session_factory() as session:
            deal = Deal(**fields)
            session.add(deal)
            await session.commit()
            return deal.id

    return _make_deal


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def auth():
    def _auth(caller: CallerContext) -> dict:
        return {"Authorization": f"Bearer {create_access_token({'sub': str(caller.user_id)})}"}

    return _auth
