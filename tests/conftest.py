"""
Shared pytest fixtures for the SiteHub test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - blob_store: Per-test LocalBlobStore in a tmp dir (autouse)
    - client: Flask test client (function-scoped)
    - make_user / identity_for / auth_headers: account + token factories
    - admin, owner, group, site: common starting graph
"""

import itertools

import bcrypt
import pytest

from sitehub import create_app
from sitehub.config import TestingConfig
from sitehub.models import db as _db
from sitehub.models.auth import User
from sitehub.services import group_service, site_service
from sitehub.services.access_policy import Identity
from sitehub.services.blob_store import LocalBlobStore
from sitehub.services.jwt_service import generate_access_token

DEFAULT_PASSWORD = "secret123"
SUPER_ADMIN_EMAIL = TestingConfig.SUPER_ADMIN_EMAIL

# Low-cost hash shared by factory users; production hashing uses 12 rounds
_FAST_HASH = bcrypt.hashpw(DEFAULT_PASSWORD.encode(), bcrypt.gensalt(rounds=4)).decode()


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture(autouse=True)
def blob_store(app, tmp_path):
    """Point the app's blob store at a fresh temporary directory."""
    previous = app.extensions["blob_store"]
    store = LocalBlobStore(str(tmp_path / "blobs"))
    app.extensions["blob_store"] = store
    yield store
    app.extensions["blob_store"] = previous


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Account factories ────────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    """Factory: make_user(role="reader", email=None, name=None) → committed User."""
    counter = itertools.count(1)

    def _make(role="reader", email=None, name=None):
        n = next(counter)
        user = User(
            email=email or f"user{n}@example.com",
            name=name if name is not None else f"User {n}",
            role=role,
            password_hash=_FAST_HASH,
        )
        _db.session.add(user)
        _db.session.commit()
        return user

    return _make


@pytest.fixture()
def identity_for():
    """Build the Identity the JWT middleware would attach for ``user``."""
    def _identity(user):
        return Identity(id=user.id, role=user.role, email=user.email)
    return _identity


@pytest.fixture()
def auth_headers():
    """Build request headers carrying a fresh access token for ``user``."""
    def _headers(user, bearer=False):
        token = generate_access_token(user.id, user.role, user.email)
        if bearer:
            return {"Authorization": f"Bearer {token}"}
        return {"x-auth-token": token}
    return _headers


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def admin(make_user):
    return make_user("admin", email="admin@example.com", name="Admin")


@pytest.fixture()
def owner(make_user):
    return make_user("group_owner", email="owner@example.com", name="Owner")


@pytest.fixture()
def group(owner, identity_for):
    """A group created by ``owner`` (who becomes its owner member)."""
    return group_service.create_group(identity_for(owner), {"name": "Acme Retail"})


@pytest.fixture()
def site(owner, group, identity_for):
    """A site inside ``group``."""
    return site_service.create_site(
        identity_for(owner),
        {
            "name": "Lyon Store",
            "group_id": group.id,
            "address": {"street": "1 rue de la Paix", "city": "Lyon", "postal_code": "69001"},
        },
    )
