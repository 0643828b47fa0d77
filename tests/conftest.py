"""Pytest configuration and shared fixtures.

Database tests use an in-memory SQLite engine and a session bound to an
outer transaction that is rolled back after each test.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from portal.core.config import FeatureFlags
from portal.core.modification.machine import ModificationStateMachine
from portal.core.policy.engine import PolicyEvaluator
from portal.core.rbac.catalog import CatalogHolder, default_catalog
from portal.core.rbac.claims import ClaimsExpander, IdentityClaims
from portal.core.rbac.roles import Role
from tests.factories import FIXED_NOW

TEST_DB_URL = "sqlite:///:memory:"


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


@pytest.fixture
def catalog():
    """Catalog snapshot built from the default role tables."""
    return default_catalog()


@pytest.fixture
def evaluator(catalog):
    return PolicyEvaluator(catalog)


@pytest.fixture
def expander(catalog):
    return ClaimsExpander(catalog)


@pytest.fixture
def make_principal(expander):
    """Build an authenticated principal holding the given roles."""

    def _make(*roles, user_id="user-1", user_status=None, is_authoriser=False):
        claims = IdentityClaims(
            authenticated=True,
            user_id=user_id,
            roles=[r.value if isinstance(r, Role) else r for r in roles],
            user_status=user_status,
            is_authoriser=is_authoriser,
        )
        return expander.expand(claims)

    return _make


@pytest.fixture
def applicant(make_principal):
    return make_principal(Role.APPLICANT, user_id="applicant-1")


@pytest.fixture
def sponsor(make_principal):
    return make_principal(Role.SPONSOR, user_id="sponsor-1")


@pytest.fixture
def reviewer(make_principal):
    return make_principal(Role.STUDYWIDE_REVIEWER, user_id="reviewer-1")


@pytest.fixture
def admin(make_principal):
    return make_principal(Role.SYSTEM_ADMINISTRATOR, user_id="admin-1")


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------


@pytest.fixture
def features():
    return FeatureFlags()


@pytest.fixture
def machine(features):
    """State machine with a fixed clock."""
    return ModificationStateMachine(features, clock=lambda: FIXED_NOW)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite engine for each test."""
    return create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )


@pytest.fixture
def tables(engine):
    """Create all ORM tables on the test engine."""
    from portal.db import models  # noqa: F401
    from portal.db.base import Base

    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def db_session(tables):
    """
    Provide a Session bound to the test DB; roll back after each test.

    ``Session.commit`` inside the code under test does not end the outer
    transaction, so the rollback still discards everything.
    """
    connection = tables.connect()
    transaction = connection.begin()
    TestSession = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        class_=Session,
    )
    session = TestSession()
    yield session
    session.close()
    transaction.rollback()
    connection.close()


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


@pytest.fixture
def catalog_holder(catalog):
    return CatalogHolder(catalog)


@pytest.fixture
def current_claims():
    """Mutable slot for the claims the fake authentication layer supplies."""
    return {"claims": IdentityClaims(authenticated=False)}


@pytest.fixture
def sign_in(current_claims):
    """Switch the API client to a signed-in user with the given roles."""

    def _sign_in(*roles, user_id="user-1", user_status=None, is_authoriser=False):
        current_claims["claims"] = IdentityClaims(
            authenticated=True,
            user_id=user_id,
            roles=[r.value if isinstance(r, Role) else r for r in roles],
            user_status=user_status,
            is_authoriser=is_authoriser,
        )

    return _sign_in


@pytest.fixture
def client(db_session, catalog_holder, current_claims):
    """Test client with the database, claims and catalog overridden."""
    from portal.api.deps import get_catalog_holder, get_claims
    from portal.api.main import app
    from portal.db.session import get_db

    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_claims] = lambda: current_claims["claims"]
    app.dependency_overrides[get_catalog_holder] = lambda: catalog_holder
    app.state.review_body_callbacks = []

    yield TestClient(app)

    app.dependency_overrides.clear()
    app.state.review_body_callbacks = []
