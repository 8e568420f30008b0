"""
Pytest fixtures for invtrack backend tests.

Provides test database setup, user/admin fixtures, sheet row builders and
test client.
"""

import bcrypt
import pytest
from invtrack import create_app
from invtrack.extensions import db
from invtrack.models import User
from invtrack.services.session_service import create_session


TEST_PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SYNC_FETCH_BACKOFF_SECONDS': 0,
        'GOOGLE_API_KEY': None,
        'SPREADSHEET_ID': None,
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


def _make_user(db_session, email: str, role: str) -> User:
    # Low bcrypt cost keeps the suite fast; verify_password accepts any cost.
    user = User(
        email=email,
        name=email.split("@")[0],
        password_hash=bcrypt.hashpw(TEST_PASSWORD.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8"),
        role=role,
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def user(db_session):
    """Power user."""
    return _make_user(db_session, "operator@example.com", "power_user")


@pytest.fixture(scope='function')
def admin(db_session):
    """Admin user."""
    return _make_user(db_session, "admin@example.com", "admin")


@pytest.fixture(scope='function')
def user_headers(user):
    _, token = create_session(user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def admin_headers(admin):
    _, token = create_session(admin.id)
    return auth_headers(token)


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def imei(n: int) -> str:
    """Deterministic valid 15-digit IMEI."""
    return f"{356938035600000 + n:015d}"


def sheet_row(n: int, **overrides) -> dict:
    """One inventory sheet row as the Sheets API hands it over."""
    row = {
        "IMEI": imei(n),
        "Model": "iPhone 13",
        "GB": "128",
        "Color": "Blue",
        "SKU": f"SKU-{n}",
        "Supplier": "Acme",
        "Master Carton": "MC-1",
        "Grade": "A",
        "Lock Status": "Unlocked",
    }
    row.update(overrides)
    return row
