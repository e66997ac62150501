"""
Pytest fixtures for tradie backend tests.

Provides test database setup, owner fixtures, and test client.
"""

import pytest

from tradie import create_app
from tradie.extensions import db
from tradie.models import Account, BusinessSettings
from tradie.services import session_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STRICT_PUBLIC_TRANSITIONS': False,
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
def strict_transitions(app):
    """Reject public accept/decline once a quote has left 'sent'."""
    app.config['STRICT_PUBLIC_TRANSITIONS'] = True
    yield
    app.config['STRICT_PUBLIC_TRANSITIONS'] = False


@pytest.fixture(scope='function')
def owner_a(db_session):
    """Owner A: GST registered, default numbering prefixes."""
    account = Account(email="owner_a@sparky.com.au", username="owner_a", email_verified=True)
    db_session.add(account)
    db_session.flush()
    db_session.add(BusinessSettings(owner_id=account.id, business_name="Sparky Electrical", gst_registered=True))
    db_session.commit()
    return account


@pytest.fixture(scope='function')
def owner_b(db_session):
    """Owner B: custom prefixes, not GST registered."""
    account = Account(email="owner_b@plumbpro.com.au", username="owner_b", email_verified=True)
    db_session.add(account)
    db_session.flush()
    db_session.add(BusinessSettings(
        owner_id=account.id,
        business_name="PlumbPro",
        quote_prefix="PP-Q-",
        invoice_prefix="PP-INV-",
        gst_registered=False,
    ))
    db_session.commit()
    return account


@pytest.fixture(scope='function')
def token_a(owner_a):
    _, token = session_service.create_session(owner_a.id)
    return token


@pytest.fixture(scope='function')
def token_b(owner_b):
    _, token = session_service.create_session(owner_b.id)
    return token
