"""
Shared fixtures: an app on an in-memory SQLite database, users with tokens,
and a division/screen pair carrying the sales form schema.
"""
import pytest
from flask import g
from werkzeug.security import generate_password_hash

from division_forms.app import create_app
from division_forms.auth import issue_token
from division_forms.models import db, User, Division, Screen, ROLE_SUPERADMIN, ROLE_ADMIN, ROLE_USER


SALES_SCHEMA = {
    "title": "Sales Entry",
    "type": "object",
    "required": ["amount", "date", "region"],
    "properties": {
        "amount": {"type": "number", "title": "Amount"},
        "date": {"type": "string", "format": "date", "title": "Date"},
        "region": {"type": "string", "enum": ["North", "South", "East", "West"], "title": "Region"},
        "remarks": {"type": "string", "title": "Remarks"}
    }
}

VALID_SALE = {"amount": 1250.5, "date": "2024-01-01", "region": "North"}


@pytest.fixture
def app():
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'SECRET_KEY': 'test-secret-key',
        'JWT_SECRET': 'test-jwt-secret',
        'VALIDATOR_CACHE_ENABLED': True,
    })

    # Requests reuse the fixture's app context, so g would keep the previous caller
    @app.before_request
    def _reset_login_user():
        g.pop('_login_user', None)

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def validator_cache(app):
    return app.extensions['validator_cache']


@pytest.fixture
def make_user(app):
    counter = {'n': 0}

    def _make(role=ROLE_USER, full_name=None, password='pass1234'):
        counter['n'] += 1
        n = counter['n']
        user = User(
            full_name=full_name or f"{role.title()} {n}",
            email=f"{role}{n}@example.com",
            password_hash=generate_password_hash(password),
            role=role
        )
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture
def headers_for(app):
    def _headers(user):
        return {'Authorization': f"Bearer {issue_token(user)}"}
    return _headers


@pytest.fixture
def superadmin(make_user):
    return make_user(ROLE_SUPERADMIN, full_name="Super Admin")


@pytest.fixture
def admin(make_user):
    return make_user(ROLE_ADMIN)


@pytest.fixture
def alice(make_user):
    return make_user(ROLE_USER, full_name="Alice")


@pytest.fixture
def division(app):
    division = Division(name="Sales Division", code="SALES")
    db.session.add(division)
    db.session.commit()
    return division


@pytest.fixture
def screens(app):
    sales = Screen(key="sales", title="Sales Form")
    production = Screen(key="production", title="Production Form")
    db.session.add_all([sales, production])
    db.session.commit()
    return sales, production


@pytest.fixture
def screen(screens):
    return screens[0]
