"""Flask CLI commands."""
from datetime import datetime

from app.models import DonationReceipt, Project, ReceiptKind, Role, User


def test_create_project(app, db):
    runner = app.test_cli_runner()

    result = runner.invoke(args=['create-project', 'Soupe populaire', '--goal', '1500'])

    assert result.exit_code == 0
    project = Project.query.filter_by(slug='soupe-populaire').one()
    assert project.goal_amount == 150000
    assert project.collected_amount == 0
    assert project.is_accepting_funds


def test_create_project_duplicate_slug(app, db, project):
    runner = app.test_cli_runner()

    result = runner.invoke(args=['create-project', 'Autre', '--slug', project.slug])

    assert result.exit_code != 0
    assert Project.query.count() == 1


def test_create_admin(app, db):
    runner = app.test_cli_runner()

    result = runner.invoke(args=['create-admin', '--email', 'boss@example.org', '--password', 'secret-pass'])

    assert result.exit_code == 0
    admin = User.query.filter_by(email='boss@example.org').one()
    assert admin.has_role('admin')
    assert Role.query.filter_by(name='user').count() == 1
    assert Role.query.filter_by(name='donor').count() == 1


def test_generate_annual_receipts(app, db, core, donor, guest_donor):
    for source in (donor, donor, guest_donor):
        donation, _ = core.ledger.start_payment(source, 2000)
        core.ledger.complete(donation.id, paid_at=datetime(2025, 6, 1))
    db.session.commit()
    runner = app.test_cli_runner()

    result = runner.invoke(args=['generate-annual-receipts', '--year', '2025'])

    assert result.exit_code == 0
    receipts = DonationReceipt.query.filter_by(kind=ReceiptKind.ANNUAL.value).all()
    assert len(receipts) == 1
    assert receipts[0].amount == 4000
    assert receipts[0].user_id == donor.user_id
