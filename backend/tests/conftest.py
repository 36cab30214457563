"""
Test Configuration — Fixtures for async DB, test client, and mock data.

Each test gets its own in-memory SQLite database (StaticPool keeps the single
connection alive) with the full schema created from the ORM metadata.
"""

import uuid
from datetime import date, datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from api.deps import get_current_user, get_db, get_tenant_db
from api.main import app
from db.session import Base

# In-memory SQLite for tests (no RLS / set_config).
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TENANT_ID = "00000000-0000-0000-0000-000000000001"


@pytest.fixture
async def test_engine():
    """Fresh database per test with all tables built."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_user():
    """Mock authenticated user."""
    return {
        "sub": "test-user-id",
        "email": "owner@mesa.app",
        "tenant_id": TENANT_ID,
    }


@pytest.fixture
async def client(test_db, mock_user):
    """Create an async test client with dependency overrides."""

    async def override_get_db():
        yield test_db

    def override_get_current_user():
        return mock_user

    async def override_get_tenant_db():
        """Skip set_config (SQLite doesn't support it), return session directly."""
        return test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_tenant_db] = override_get_tenant_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def sql_log(test_engine):
    """
    Record every SQL statement issued from the moment the fixture is requested.

    Request it after seeding fixtures so only the code under test is captured.
    """
    statements: list[str] = []

    def _record(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    event.listen(test_engine.sync_engine, "before_cursor_execute", _record)
    yield statements
    event.remove(test_engine.sync_engine, "before_cursor_execute", _record)


@pytest.fixture
async def seeded_db(test_db):
    """
    Seed a tenant with two branches, three recipes covering each cost tier,
    sales history, expense history and a mix of open system events.

      Hamburguesa  price 10, snapshot cost 4.00 in Centro     (tier 1)
      Tacos        price 8, technical cost 100g×0.01 + 150g×0.02 = 4.00 (tier 2)
      Ensalada     price 6, ingredient never stocked          (no cost)
    """
    from db.models import (
        Branch,
        Expense,
        Ingredient,
        InventoryItem,
        Order,
        OrderItem,
        Recipe,
        RecipeCostSnapshotDaily,
        RecipeItem,
        SystemEvent,
        Tenant,
    )

    tenant_id = uuid.UUID(TENANT_ID)
    now = datetime.utcnow()

    tenant = Tenant(tenant_id=tenant_id, name="Casa Mesa", plan="pro")
    test_db.add(tenant)
    await test_db.flush()

    centro = Branch(tenant_id=tenant_id, name="Centro")
    norte = Branch(tenant_id=tenant_id, name="Norte")
    test_db.add_all([centro, norte])
    await test_db.flush()

    tortilla = Ingredient(tenant_id=tenant_id, name="Tortilla")
    carne = Ingredient(tenant_id=tenant_id, name="Carne")
    lechuga = Ingredient(tenant_id=tenant_id, name="Lechuga")
    test_db.add_all([tortilla, carne, lechuga])
    await test_db.flush()

    burger = Recipe(tenant_id=tenant_id, name="Hamburguesa", selling_price=10.0, created_at=now - timedelta(days=30))
    tacos = Recipe(tenant_id=tenant_id, name="Tacos", selling_price=8.0, created_at=now - timedelta(days=30))
    salad = Recipe(tenant_id=tenant_id, name="Ensalada", selling_price=6.0, created_at=now - timedelta(days=30))
    test_db.add_all([burger, tacos, salad])
    await test_db.flush()

    test_db.add_all(
        [
            RecipeItem(recipe_id=tacos.id, ingredient_id=tortilla.id, quantity_gr=100),
            RecipeItem(recipe_id=tacos.id, ingredient_id=carne.id, quantity_gr=150),
            RecipeItem(recipe_id=salad.id, ingredient_id=lechuga.id, quantity_gr=200),
            InventoryItem(
                tenant_id=tenant_id, branch_id=centro.branch_id, ingredient_id=tortilla.id,
                current_qty_gr=5000, unit_cost_gr=0.01,
            ),
            InventoryItem(
                tenant_id=tenant_id, branch_id=centro.branch_id, ingredient_id=carne.id,
                current_qty_gr=3000, unit_cost_gr=0.02,
            ),
            # Older, then newer snapshot for Centro; Norte has its own
            RecipeCostSnapshotDaily(
                tenant_id=tenant_id, branch_id=centro.branch_id, recipe_id=burger.id,
                snapshot_date=date.today() - timedelta(days=2), avg_cost_per_unit=5.0,
                created_at=now - timedelta(days=2),
            ),
            RecipeCostSnapshotDaily(
                tenant_id=tenant_id, branch_id=centro.branch_id, recipe_id=burger.id,
                snapshot_date=date.today() - timedelta(days=1), avg_cost_per_unit=4.0,
                created_at=now - timedelta(days=1),
            ),
            RecipeCostSnapshotDaily(
                tenant_id=tenant_id, branch_id=norte.branch_id, recipe_id=burger.id,
                snapshot_date=date.today(), avg_cost_per_unit=6.0,
                created_at=now,
            ),
        ]
    )
    await test_db.flush()

    completed = Order(tenant_id=tenant_id, branch_id=centro.branch_id, status="completed", total=30)
    pending = Order(tenant_id=tenant_id, branch_id=centro.branch_id, status="pending", total=50)
    test_db.add_all([completed, pending])
    await test_db.flush()
    test_db.add_all(
        [
            OrderItem(order_id=completed.id, recipe_id=burger.id, quantity=3, unit_price=10.0),
            OrderItem(order_id=pending.id, recipe_id=burger.id, quantity=5, unit_price=10.0),
        ]
    )

    # Limpieza: January 200 + 100, February 300 → monthly average 300
    test_db.add_all(
        [
            Expense(tenant_id=tenant_id, branch_id=centro.branch_id, category="Limpieza",
                    amount=200, incurred_on=date(2026, 1, 5)),
            Expense(tenant_id=tenant_id, branch_id=centro.branch_id, category="Limpieza",
                    amount=100, incurred_on=date(2026, 1, 20)),
            Expense(tenant_id=tenant_id, branch_id=centro.branch_id, category="Limpieza",
                    amount=300, incurred_on=date(2026, 2, 10)),
        ]
    )

    events = {
        "margin_drift": SystemEvent(
            tenant_id=tenant_id, branch_id=centro.branch_id, event_type="margin_drift",
            event_category="financial", severity="warning", source_table="recipes",
            source_record_id=str(burger.id), impact_value=-120.5,
            impact_projection="El margen de Hamburguesa cayó 12%.", recommended_action="Revisa el precio.",
            event_metadata={"recipe_name": "Hamburguesa", "target_margin": 0.5},
            created_at=now - timedelta(hours=3),
        ),
        "expense_anomaly": SystemEvent(
            tenant_id=tenant_id, branch_id=centro.branch_id, event_type="expense_anomaly",
            event_category="financial", severity="critical", source_table="expenses",
            impact_value=1000, impact_projection="Gasto de Marketing 3x sobre el promedio.",
            event_metadata={"category": "Marketing", "actual_amount": 1000},
            created_at=now - timedelta(hours=5),
        ),
        "idle_inventory_capital": SystemEvent(
            tenant_id=tenant_id, branch_id=centro.branch_id, event_type="idle_inventory_capital",
            event_category="inventory", severity="info", source_table="inventory",
            impact_value=800, impact_projection="Carne sin rotación en 20 días.",
            recommended_action="Pausa compras de Carne.",
            event_metadata={"ingredient_name": "Carne", "frozen_capital": 800, "current_qty": 40},
            created_at=now - timedelta(hours=1),
        ),
        "low_stock": SystemEvent(
            tenant_id=tenant_id, branch_id=centro.branch_id, event_type="low_stock",
            event_category="inventory", severity="critical", source_table="inventory",
            impact_projection="Tortilla por debajo del mínimo.", recommended_action="Crear orden de compra",
            event_metadata='{"ingredient_name": "Tortilla"}',
            created_at=now - timedelta(hours=2),
        ),
        "unknown": SystemEvent(
            tenant_id=tenant_id, branch_id=centro.branch_id, event_type="fridge_door-open",
            event_category="maintenance", severity="urgent", impact_projection="",
            event_metadata="{not json",
            created_at=now,
        ),
        "resolved": SystemEvent(
            tenant_id=tenant_id, branch_id=centro.branch_id, event_type="cash_shortage",
            event_category="operational", severity="critical", impact_projection="Caja descuadrada.",
            resolved=True, created_at=now,
        ),
        "norte": SystemEvent(
            tenant_id=tenant_id, branch_id=norte.branch_id, event_type="void_spike",
            event_category="operational", severity="warning", impact_projection="Cancelaciones altas.",
            created_at=now,
        ),
    }
    test_db.add_all(list(events.values()))
    await test_db.flush()
    await test_db.commit()

    return {
        "tenant_id": tenant_id,
        "centro": centro,
        "norte": norte,
        "burger": burger,
        "tacos": tacos,
        "salad": salad,
        "ingredients": {"tortilla": tortilla, "carne": carne, "lechuga": lechuga},
        "events": events,
    }
