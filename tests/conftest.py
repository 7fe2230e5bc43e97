"""Shared fixtures: testing app on in-memory SQLite with a recording fake gateway."""
import pytest
from flask import g

from app import create_app, extensions
from app.extensions import db as _db
from app.models import Project, ProjectStatus, Role
from app.services import DonorRef, get_donation_core
from app.services.email_service import EmailService
from tests.helpers import FakeGateway


@pytest.fixture
def app(tmp_path):
    app = create_app('testing', {'RECEIPTS_FOLDER': str(tmp_path / 'receipts')})

    # The app context below outlives each test request; drop what a request
    # left in g (the authenticated user among others) so the next one starts clean.
    @app.teardown_request
    def _clear_request_globals(exc):
        for name in list(g):
            g.pop(name, None)

    with app.app_context():
        _db.create_all()
        app.extensions['payment_gateway'] = FakeGateway(app.config['STRIPE_WEBHOOK_SECRET'])
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def client(app):
    return app.test_client(use_cookies=False)


@pytest.fixture
def gateway(app):
    return app.extensions['payment_gateway']


@pytest.fixture
def core(app):
    return get_donation_core()


@pytest.fixture
def sent_emails(monkeypatch):
    """Donor emails handed to EmailService, as (method, kwargs)"""
    sent = []

    def recorder(name):
        def record(**kwargs):
            sent.append((name, kwargs))
            return True
        return record

    for name in ('send_donation_confirmation', 'send_billing_failed', 'send_recurrence_canceled'):
        monkeypatch.setattr(EmailService, name, recorder(name))
    return sent


def _make_user(db, email, username, roles=()):
    user = extensions.user_datastore.create_user(
        email=email,
        username=username,
        password='password',
        first_name=username.capitalize(),
        last_name='Donateur',
        address_line1='12 rue des Lilas',
        postal_code='75011',
        city='Paris',
        roles=list(roles),
    )
    db.session.commit()
    return user


@pytest.fixture
def admin_role(db):
    role = Role(name='admin', description='Administrator')
    db.session.add(role)
    db.session.commit()
    return role


@pytest.fixture
def user(db):
    return _make_user(db, 'alice@example.org', 'alice')


@pytest.fixture
def other_user(db):
    return _make_user(db, 'bob@example.org', 'bob')


@pytest.fixture
def admin(db, admin_role):
    return _make_user(db, 'admin@example.org', 'admin', roles=[admin_role])


@pytest.fixture
def project(db):
    project = Project(name='Maraude hiver', slug='maraude-hiver', status=ProjectStatus.ACTIVE.value,
                      goal_amount=1000000, collected_amount=0)
    db.session.add(project)
    db.session.commit()
    return project


@pytest.fixture
def draft_project(db):
    project = Project(name='Projet brouillon', slug='projet-brouillon', status=ProjectStatus.DRAFT.value)
    db.session.add(project)
    db.session.commit()
    return project


@pytest.fixture
def donor(user):
    return DonorRef.for_user(user)


@pytest.fixture
def guest_donor():
    return DonorRef(email='guest@example.org', first_name='Gaston', last_name='Invite',
                    address='1 place du Marche', postal_code='69001', city='Lyon')
