import os

# avant tout import backend.* : le moteur applicatif ne doit pas viser Postgres
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from backend.app.api.deps import get_db
from backend.app.db.base import Base
from backend.app.db.models import models_v1  # noqa: F401  (enregistre les tables)
from backend.app.db.models.models_v1 import InventoryItem
from backend.app.main import app


@pytest.fixture(scope="function")
def db_session() -> Session:
    """
    Session DB isolée par test.

    SQLite en mémoire, une seule connexion partagée (StaticPool) :
    les commit() des stores restent visibles, tout disparaît à la fin du test.
    """
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def client(db_session):
    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_item(db_session):
    def _make(*, id=None, code="PKG 10182", description="Small Carton 46 X 34 X 34",
              unit="PCS", price="2.50", stock=100, critical_stock=10):
        item = InventoryItem(
            id=id,
            code=code,
            description=description,
            unit=unit,
            price=Decimal(price),
            stock=stock,
            critical_stock=critical_stock,
        )
        db_session.add(item)
        db_session.commit()
        return item

    return _make

