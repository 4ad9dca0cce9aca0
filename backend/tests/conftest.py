"""
Pytest fixtures for StockWise backend tests.

Provides test database setup, store / user / product factories and test client.
"""

import pytest
from stockwise import create_app
from stockwise.extensions import db
from stockwise.models import Store, User, Product
from stockwise.services.auth_service import hash_password
from stockwise.services import permission_service


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
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
def db_session(app, monkeypatch):
    """Create fresh database (and a fresh rule store) for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        monkeypatch.setattr(permission_service, "rule_store", permission_service.RolePermissionStore())

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def seeded_rules(db_session):
    """Default rule row for every role level."""
    permission_service.rule_store.seed_defaults()
    return permission_service.rule_store


@pytest.fixture(scope='function')
def make_store(db_session):
    def _make(name, **kwargs):
        store = Store(name=name, **kwargs)
        db_session.add(store)
        db_session.commit()
        return store
    return _make


@pytest.fixture(scope='function')
def make_user(db_session):
    def _make(username, role_level=9, stores=()):
        user = User(
            username=username,
            password_hash=hash_password(TEST_PASSWORD),
            role_level=role_level,
        )
        user.allowed_stores = list(stores)
        db_session.add(user)
        db_session.commit()
        return user
    return _make


@pytest.fixture(scope='function')
def make_product(db_session):
    def _make(name="Milk", **kwargs):
        kwargs.setdefault("split_ratio", 1)
        product = Product(name=name, **kwargs)
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def store_a(make_store):
    return make_store("Store A")


@pytest.fixture(scope='function')
def store_b(make_store):
    return make_store("Store B")


@pytest.fixture(scope='function')
def admin(make_user, seeded_rules):
    """Level 0 super-admin."""
    return make_user("admin", role_level=0)


@pytest.fixture(scope='function')
def manager(make_user, seeded_rules, store_a):
    """Level 1 manager (GLOBAL scope by default)."""
    return make_user("manager", role_level=1, stores=[store_a])


@pytest.fixture(scope='function')
def clerk(make_user, seeded_rules, store_a):
    """Level 3 staff limited to Store A."""
    return make_user("clerk", role_level=3, stores=[store_a])


@pytest.fixture(scope='function')
def clerk_b(make_user, seeded_rules, store_b):
    """Level 3 staff limited to Store B."""
    return make_user("clerk_b", role_level=3, stores=[store_b])


@pytest.fixture(scope='function')
def product(make_product):
    """Unbound product sold in boxes of 12 pieces."""
    return make_product("Juice", unit_name="Box", split_unit_name="Pc", split_ratio=12)


def get_auth_token(client, username: str, password: str = TEST_PASSWORD) -> str:
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
