from types import SimpleNamespace

import pytest

from app import create_app
from config import TestConfig
from models import db
from models.company import Company
from models.user import User
from utils.auth_utils import hash_password, generate_token

PASSWORD = "secret123"


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _user(name, email, role, company=None, manager=None):
    user = User(
        name=name,
        email=email,
        password=hash_password(PASSWORD),
        role=role,
        company_id=company.id if company else None,
        manager_id=manager.id if manager else None,
        is_active=True,
    )
    db.session.add(user)
    db.session.flush()
    if company is not None:
        company.user_count += 1
    return user


@pytest.fixture
def world(app):
    """Two companies, an admin, a manager and staff in each, and one companyless staff."""
    acme = Company(name="Acme", slug="acme", status="active", user_count=0)
    globex = Company(name="Globex", slug="globex", status="active", user_count=0)
    db.session.add_all([acme, globex])
    db.session.flush()

    admin = _user("Ada Admin", "admin@example.com", "admin")
    manager = _user("Max Manager", "max@acme.com", "manager", acme)
    alice = _user("Alice Staff", "alice@acme.com", "staff", acme, manager)
    bob = _user("Bob Staff", "bob@acme.com", "staff", acme, manager)
    other_manager = _user("Gil Manager", "gil@globex.com", "manager", globex)
    carol = _user("Carol Staff", "carol@globex.com", "staff", globex, other_manager)
    drifter = _user("Dan Nocompany", "dan@example.com", "staff")
    db.session.commit()

    return SimpleNamespace(
        acme=acme, globex=globex, admin=admin, manager=manager, alice=alice,
        bob=bob, other_manager=other_manager, carol=carol, drifter=drifter,
    )


@pytest.fixture
def auth(app):
    def headers(user):
        return {"Authorization": f"Bearer {generate_token(user)}"}
    return headers
