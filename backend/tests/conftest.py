"""
Central pytest configuration for the warehouse assignment tests.

This file provides common fixtures and test environment setup
for both unit and integration tests.
"""

import os

# Test database configuration (set early so the lazy engine uses it)
TEST_DATABASE_URL = "sqlite:///:memory:"  # In-memory SQLite for fast tests
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["TESTING"] = "true"  # Remote writes run inline
os.environ["LOG_TO_FILE"] = "0"
os.environ.pop("CLEAR_STALE_ASSIGNMENTS", None)
os.environ.pop("SENTRY_DSN", None)

import pytest  # noqa: E402

from tests.config.markers import (  # noqa: E402,F401
    pytest_collection_modifyitems,
    pytest_configure,
)
from tests.factories.repository_factories import (  # noqa: E402
    build_engine_harness,
    make_user,
)
from warehouse_assignment.db.session import create_tables, drop_tables  # noqa: E402


@pytest.fixture
def db_tables():
    """Fresh schema in the shared in-memory database for one test."""
    create_tables()
    yield
    drop_tables()


@pytest.fixture
def directory_repo(db_tables):
    from warehouse_assignment.repositories.user_directory_repo import (
        UserDirectoryRepository,
    )

    return UserDirectoryRepository()


@pytest.fixture
def config_repo(db_tables):
    from warehouse_assignment.repositories.exclusion_config_repo import (
        ExclusionConfigRepository,
    )

    return ExclusionConfigRepository()


@pytest.fixture
def make_harness():
    """Factory for an engine wired to in-memory stores and inline writes."""
    return build_engine_harness


@pytest.fixture
def harness():
    """W10 holds u1 and u2, W20 holds u3, W30 is empty; u4 and u5 available."""
    return build_engine_harness(
        users=[
            make_user("u1", 10, name="Ana Torres", email="ana@example.com"),
            make_user("u2", 10, name="Bruno Díaz"),
            make_user("u3", 20, name="Carla Ruiz"),
            make_user("u4", None, name="Diego León", email="dleon@ruta.mx"),
            make_user("u5", None, name="Elena Mora"),
        ]
    )


@pytest.fixture
def app(harness):
    """Flask app bound to the in-memory harness engine."""
    from warehouse_assignment.main import create_app

    app = create_app(engine=harness.engine)
    app.config["TESTING"] = True
    yield app


@pytest.fixture
def client(app):
    """Create a test client for the app."""
    return app.test_client()
