"""Pytest configuration and fixtures."""

import pytest
from datetime import date
from decimal import Decimal
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from livebase.core.cache import SimpleCache
from livebase.core.config import Settings
from livebase.db.base import Base
from livebase.db.session import enable_sqlite_foreign_keys
# Import all models to ensure they're registered with Base.metadata
from livebase.models import *
from livebase.models.goods import Category, Goods, GoodsLocalSetting
from livebase.models.location import Location, LocationType
from livebase.models.operating_base import OperatingBase
from livebase.models.personnel import Personnel, PersonnelRole
from livebase.models.purchase import PurchaseOrder, PurchaseOrderItem

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the developer's environment and .env file."""
    return Settings(_env_file=None, redis_url=None, debug=True)


@pytest.fixture
def stock_cache() -> SimpleCache:
    """A fresh in-memory cache per test."""
    return SimpleCache()


@pytest.fixture
def base_setup(db_session):
    """Create a base with goods, locations, handlers and a purchase order.

    Beef jerky: 10 packs per box, 5 pieces per pack (50 pieces per box).
    Green tea: 4 packs per box, 6 pieces per pack (24 pieces per box).
    The purchase order orders 2 boxes (100 pieces) of beef jerky at 5.00 a box.
    """
    base = OperatingBase(code="HZ01", name="Hangzhou Live Base", currency="CNY")
    other_base = OperatingBase(code="SH01", name="Shanghai Live Base", currency="CNY")
    db_session.add_all([base, other_base])
    db_session.flush()

    category = Category(code="SNACK", name="Snacks", name_i18n={"zh_CN": "零食", "en": "Snacks"})
    db_session.add(category)
    db_session.flush()

    jerky = Goods(
        code="G001",
        name={"zh_CN": "牛肉干", "en": "Beef Jerky"},
        category_id=category.id,
        pack_per_box=10,
        piece_per_pack=5,
    )
    tea = Goods(code="G002", name="Green Tea", pack_per_box=4, piece_per_pack=6)
    db_session.add_all([jerky, tea])
    db_session.flush()

    db_session.add_all([
        GoodsLocalSetting(goods_id=jerky.id, base_id=base.id, is_active=True, alias="jerky"),
        GoodsLocalSetting(goods_id=tea.id, base_id=base.id, is_active=True),
    ])

    main_warehouse = Location(
        base_id=base.id, name="Main Warehouse", code="MW", type=LocationType.MAIN_WAREHOUSE
    )
    warehouse = Location(base_id=base.id, name="Back Warehouse", code="BW", type=LocationType.WAREHOUSE)
    live_room = Location(base_id=base.id, name="Live Room A", code="LR-A", type=LocationType.LIVE_ROOM)
    foreign_location = Location(
        base_id=other_base.id, name="Shanghai Warehouse", type=LocationType.MAIN_WAREHOUSE
    )
    db_session.add_all([main_warehouse, warehouse, live_room, foreign_location])

    keeper = Personnel(base_id=base.id, name="Li Keeper", role=PersonnelRole.WAREHOUSE_KEEPER)
    anchor = Personnel(base_id=base.id, name="Wang Anchor", role=PersonnelRole.ANCHOR)
    second_anchor = Personnel(base_id=base.id, name="Zhao Anchor", role=PersonnelRole.ANCHOR)
    foreign_handler = Personnel(base_id=other_base.id, name="Chen Outsider")
    db_session.add_all([keeper, anchor, second_anchor, foreign_handler])
    db_session.flush()

    purchase_order = PurchaseOrder(
        base_id=base.id, code="PO-0001", supplier_name="Inner Mongolia Foods",
        purchase_date=date(2024, 3, 1),
    )
    purchase_order.items.append(PurchaseOrderItem(
        goods_id=jerky.id, box_quantity=2, unit_price=Decimal("5.00"),
    ))
    db_session.add(purchase_order)
    db_session.commit()

    return {
        "db": db_session,
        "base": base,
        "other_base": other_base,
        "category": category,
        "jerky": jerky,
        "tea": tea,
        "main_warehouse": main_warehouse,
        "warehouse": warehouse,
        "live_room": live_room,
        "foreign_location": foreign_location,
        "keeper": keeper,
        "anchor": anchor,
        "second_anchor": second_anchor,
        "foreign_handler": foreign_handler,
        "purchase_order": purchase_order,
    }


@pytest.fixture
def make_purchase_order(db_session):
    """Factory for extra single-item purchase orders."""
    counter = {"n": 100}

    def _make(base, goods, box=0, pack=0, piece=0, unit_price="0"):
        counter["n"] += 1
        order = PurchaseOrder(
            base_id=base.id, code=f"PO-{counter['n']:04d}", purchase_date=date(2024, 3, 2),
        )
        order.items.append(PurchaseOrderItem(
            goods_id=goods.id, box_quantity=box, pack_quantity=pack, piece_quantity=piece,
            unit_price=Decimal(unit_price),
        ))
        db_session.add(order)
        db_session.commit()
        return order

    return _make
