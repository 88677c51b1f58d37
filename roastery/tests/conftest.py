import os

# Avant tout import roastery : get_settings() est mis en cache au premier appel
os.environ.setdefault("DATABASE_URL", "sqlite://")

from decimal import Decimal
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from roastery.app.api.deps import get_container, get_db
from roastery.app.db.base import Base
from roastery.app.db.models import models_v1  # noqa: F401  (enregistre les tables)
from roastery.app.db.models.models_v1 import Coffee, Shop, ShopUser, User
from roastery.app.db.models.core_types import PackageType, Role
from roastery.app.main import app
from roastery.services.container import Services, build_services
from roastery.services.inventory import LedgerLine


@pytest.fixture(scope="function")
def db_engine():
    """Base SQLite en mémoire, recréée pour chaque test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """
    Session isolée par test.

    Pas de SAVEPOINT : les services commit / rollback eux-mêmes, la base
    entière est jetée à la fin du test.
    """
    TestingSession = sessionmaker(bind=db_engine, autoflush=False, autocommit=False)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def services() -> Services:
    # haircut par défaut = 15 % (config)
    return build_services()


@pytest.fixture
def make_user(db_session):
    def _make(username: str = "admin", role: Role = Role.admin, active: bool = True, shop: Shop | None = None) -> User:
        user = User(username=username, role=role, active=active)
        db_session.add(user)
        db_session.flush()
        if shop is not None:
            db_session.add(ShopUser(shop_id=shop.id, user_id=user.id))
        db_session.commit()
        return user

    return _make


@pytest.fixture
def make_shop(db_session):
    def _make(name: str = "Main Street", small: int | None = None, medium: int | None = None, large: int | None = None) -> Shop:
        shop = Shop(name=name, min_small_bags=small, min_medium_bags=medium, min_large_bags=large)
        db_session.add(shop)
        db_session.commit()
        return shop

    return _make


@pytest.fixture
def make_coffee(db_session):
    def _make(name: str = "Yirgacheffe", quantity_kg: str = "10", active: bool = True) -> Coffee:
        coffee = Coffee(name=name, quantity_kg=Decimal(quantity_kg), active=active)
        db_session.add(coffee)
        db_session.commit()
        return coffee

    return _make


@pytest.fixture
def admin(make_user) -> User:
    return make_user()


@pytest.fixture
def shop(make_shop) -> Shop:
    return make_shop()


@pytest.fixture
def coffee(make_coffee) -> Coffee:
    return make_coffee()


@pytest.fixture
def line():
    """line(coffee_id, small_espresso=2, large=1) -> LedgerLine"""

    def _line(coffee_id: int, **counts) -> LedgerLine:
        return LedgerLine(coffee_id=coffee_id, counts={PackageType[k]: v for k, v in counts.items()})

    return _line


@pytest.fixture
def client(db_session: Session, services: Services) -> Generator[TestClient, None, None]:
    """Client HTTP branché sur la session et les services du test."""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_container] = lambda: services
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
