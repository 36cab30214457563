"""
Mesa Database Models

Read-side mirrors of the tables owned by the hosted restaurant backend.
The intelligence layer only ever SELECTs from these; schema, triggers and
stored procedures live with the backend.
Multi-tenant via tenant_id on all tables.

Tables:
  Tenancy (1-2):
  1. tenants                     - Restaurant companies (SaaS accounts)
  2. branches                    - Physical restaurant locations

  Intelligence (3):
  3. system_events               - Trigger-emitted events (alerts + suggestions)

  Menu & Costing (4-7):
  4. recipes                     - Sellable dishes with selling price
  5. ingredients                 - Ingredient catalog
  6. recipe_items                - Technical sheet: grams of ingredient per recipe
  7. recipe_cost_snapshot_daily  - Daily average cost per unit, per branch

  Inventory (8):
  8. inventory                   - Per-branch stock and weighted unit cost per gram

  Sales (9-10):
  9. orders                      - POS orders (status lifecycle owned by RPCs)
  10. order_items                - Lines of an order

  Finance (11):
  11. expenses                   - Operating expenses by category
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    TypeDecorator,
    types,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL UUID when available, stores as CHAR(36) on SQLite.
    """

    impl = types.String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(types.String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if isinstance(value, uuid.UUID) else value

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


from sqlalchemy.orm import relationship

from db.session import Base

# ─── 1. Tenants ─────────────────────────────────────────────────────────────


class Tenant(Base):
    __tablename__ = "tenants"

    tenant_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    plan = Column(String(50), nullable=False, default="basic")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    branches = relationship("Branch", back_populates="tenant", cascade="all, delete-orphan")


# ─── 2. Branches ────────────────────────────────────────────────────────────


class Branch(Base):
    __tablename__ = "branches"

    branch_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(GUID(), ForeignKey("tenants.tenant_id"), nullable=False)
    name = Column(String(255), nullable=False)
    address = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (Index("ix_branches_tenant", "tenant_id"),)

    tenant = relationship("Tenant", back_populates="branches")


# ─── 3. System Events ───────────────────────────────────────────────────────


class SystemEvent(Base):
    __tablename__ = "system_events"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(GUID(), ForeignKey("tenants.tenant_id"), nullable=False)
    branch_id = Column(GUID(), ForeignKey("branches.branch_id"), nullable=True)
    event_type = Column(String(50), nullable=False)
    event_category = Column(String(20), nullable=False, default="operational")
    severity = Column(String(20), nullable=False, default="info")
    source_table = Column(String(100))
    # Free-form: triggers have emitted non-UUID ids here
    source_record_id = Column(String(64))
    impact_value = Column(Float)
    impact_projection = Column(Text, nullable=False, default="")
    recommended_action = Column(Text)
    # JSON object, or a JSON-encoded string from older triggers
    event_metadata = Column("metadata", JSON, default={})
    resolved = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_system_events_open", "tenant_id", "branch_id", postgresql_where="resolved = false"),
        Index("ix_system_events_created", "created_at"),
    )


# ─── 4. Recipes ─────────────────────────────────────────────────────────────


class Recipe(Base):
    __tablename__ = "recipes"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(GUID(), ForeignKey("tenants.tenant_id"), nullable=False)
    name = Column(String(255), nullable=False)
    category = Column(String(100))
    selling_price = Column(Float)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (Index("ix_recipes_tenant_name", "tenant_id", "name"),)

    items = relationship("RecipeItem", back_populates="recipe", cascade="all, delete-orphan")


# ─── 5. Ingredients ─────────────────────────────────────────────────────────


class Ingredient(Base):
    __tablename__ = "ingredients"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(GUID(), ForeignKey("tenants.tenant_id"), nullable=False)
    name = Column(String(255), nullable=False)
    unit = Column(String(20), nullable=False, default="gr")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


# ─── 6. Recipe Items (technical sheet) ──────────────────────────────────────


class RecipeItem(Base):
    __tablename__ = "recipe_items"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    recipe_id = Column(GUID(), ForeignKey("recipes.id"), nullable=False)
    ingredient_id = Column(GUID(), ForeignKey("ingredients.id"), nullable=False)
    quantity_gr = Column(Float, nullable=False, default=0)

    __table_args__ = (
        Index("ix_recipe_items_recipe", "recipe_id"),
        CheckConstraint("quantity_gr >= 0", name="ck_recipe_item_quantity"),
    )

    recipe = relationship("Recipe", back_populates="items")
    ingredient = relationship("Ingredient")


# ─── 7. Recipe Cost Snapshot (daily) ────────────────────────────────────────


class RecipeCostSnapshotDaily(Base):
    __tablename__ = "recipe_cost_snapshot_daily"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(GUID(), ForeignKey("tenants.tenant_id"), nullable=False)
    branch_id = Column(GUID(), ForeignKey("branches.branch_id"), nullable=False)
    recipe_id = Column(GUID(), ForeignKey("recipes.id"), nullable=False)
    snapshot_date = Column(Date, nullable=False)
    avg_cost_per_unit = Column(Float)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (Index("ix_cost_snapshot_recipe_branch", "recipe_id", "branch_id", "created_at"),)


# ─── 8. Inventory ───────────────────────────────────────────────────────────


class InventoryItem(Base):
    __tablename__ = "inventory"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(GUID(), ForeignKey("tenants.tenant_id"), nullable=False)
    branch_id = Column(GUID(), ForeignKey("branches.branch_id"), nullable=False)
    ingredient_id = Column(GUID(), ForeignKey("ingredients.id"), nullable=False)
    current_qty_gr = Column(Float, nullable=False, default=0)
    # FIFO-weighted cost per gram, maintained by stock receipt RPCs
    unit_cost_gr = Column(Float, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (Index("ix_inventory_branch_ingredient", "branch_id", "ingredient_id"),)


# ─── 9. Orders ──────────────────────────────────────────────────────────────


class Order(Base):
    __tablename__ = "orders"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(GUID(), ForeignKey("tenants.tenant_id"), nullable=False)
    branch_id = Column(GUID(), ForeignKey("branches.branch_id"), nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    total = Column(Float, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_orders_branch_status", "branch_id", "status"),
        CheckConstraint(
            "status IN ('pending', 'preparing', 'ready', 'served', 'completed', 'cancelled')",
            name="ck_order_status",
        ),
    )

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")


# ─── 10. Order Items ────────────────────────────────────────────────────────


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    order_id = Column(GUID(), ForeignKey("orders.id"), nullable=False)
    recipe_id = Column(GUID(), ForeignKey("recipes.id"), nullable=False)
    quantity = Column(Float, nullable=False, default=1)
    unit_price = Column(Float)

    __table_args__ = (Index("ix_order_items_recipe", "recipe_id"),)

    order = relationship("Order", back_populates="items")


# ─── 11. Expenses ───────────────────────────────────────────────────────────


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(GUID(), ForeignKey("tenants.tenant_id"), nullable=False)
    branch_id = Column(GUID(), ForeignKey("branches.branch_id"), nullable=True)
    category = Column(String(100), nullable=False)
    description = Column(Text)
    amount = Column(Float, nullable=False)
    incurred_on = Column(Date, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_expenses_category_branch", "category", "branch_id"),
        CheckConstraint("amount >= 0", name="ck_expense_amount"),
    )
