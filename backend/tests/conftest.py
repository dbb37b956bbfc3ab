"""
Pytest fixtures for the saree shop backend tests.

Provides the app against in-memory SQLite, a per-test clean database,
a logged-in user, and a few catalog items.
"""

from datetime import timedelta

import pytest
from sareeshop import create_app
from sareeshop.extensions import db
from sareeshop.models import Item, Partner, User
from sareeshop.services.auth_service import hash_password
from sareeshop.time_utils import utcnow

TEST_PASSWORD = "Saree2024pw"


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'UPLOAD_FOLDER': str(tmp_path_factory.mktemp("uploads")),
        'DEFAULT_PARTNERS': ["Putty", "Sony"],
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def user(db_session):
    """Login user 'putty'."""
    user = User(username="putty", password_hash=hash_password(TEST_PASSWORD))
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def token(client, user):
    return get_auth_token(client, "putty", TEST_PASSWORD)


@pytest.fixture(scope='function')
def partners(db_session):
    rows = [Partner(name="Putty"), Partner(name="Sony")]
    db_session.add_all(rows)
    db_session.commit()
    return rows


def make_item(db_session, *, name="Kanjivaram Silk", price_cents=500000, cost_cents=300000,
              stock=1, category="Maroon", source="Kanchipuram Weavers", days_old=0, **extra):
    """Insert one item row directly; days_old back-dates created_at."""
    item = Item(
        name=name,
        price_cents=price_cents,
        cost_cents=cost_cents,
        stock=stock,
        category=category,
        source=source,
        created_at=utcnow() - timedelta(days=days_old),
        **extra,
    )
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def silk_item(db_session):
    return make_item(db_session)


@pytest.fixture(scope='function')
def cotton_item(db_session):
    return make_item(
        db_session,
        name="Chanderi Cotton",
        price_cents=150000,
        cost_cents=90000,
        category="Ivory",
        source="Chanderi Co-op",
    )


def get_auth_token(client, username: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
