"""Pytest configuration and fixtures for service layer tests."""

from decimal import Decimal
from itertools import count

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session

from src.models.base import Base


@pytest.fixture(scope="function")
def test_db():
    """Provide a clean test database for each test function.

    This fixture:
    1. Creates an in-memory SQLite database
    2. Creates all tables
    3. Provides the database to the test
    4. Drops all tables after the test completes
    """
    # Create in-memory SQLite database for testing
    engine = create_engine("sqlite:///:memory:", echo=False)

    # Import all models so they are registered with Base
    import src.models  # noqa: F401

    # Create all tables
    Base.metadata.create_all(engine)

    # Create session factory
    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    Session = scoped_session(session_factory)

    # Monkey-patch the global session factory for tests
    import src.services.database as db_module

    original_get_session = db_module.get_session_factory
    db_module.get_session_factory = lambda: Session

    # Provide database to test
    yield Session

    # Cleanup
    Session.remove()
    Base.metadata.drop_all(engine)
    engine.dispose()

    # Restore original session factory
    db_module.get_session_factory = original_get_session


@pytest.fixture(scope="function")
def make_product(test_db):
    """Factory creating V01 products with unique SKU codes (A01, A02, ...)."""
    from src.services import catalog_service

    codes = count(1)

    def _make(name="Test Product", base_price="10.00", category="PUMP", **fields):
        data = {
            "name": name,
            "base_price": Decimal(str(base_price)),
            "sku_category": category,
            "sku_product_code": f"A{next(codes):02d}",
        }
        data.update(fields)
        return catalog_service.create_product(data)

    return _make


@pytest.fixture(scope="function")
def pump(make_product):
    """A pump sold standalone or as a part (base 100.00)."""
    return make_product(name="D5 Pump", base_price="100.00", category="PUMP")


@pytest.fixture(scope="function")
def motor(make_product):
    """A motor with a component price (base 60.00, as part 50.00)."""
    return make_product(
        name="Pump Motor", base_price="60.00", category="MOTR", component_price="50.00"
    )


@pytest.fixture(scope="function")
def radiator(make_product):
    """A radiator (base 40.00)."""
    return make_product(name="360mm Radiator", base_price="40.00", category="RADI")
