"""Donation ledger: creation, lifecycle transitions and their side effects."""
from datetime import datetime

import pytest

from app.errors import GatewayError, IllegalTransition, InvalidAmount, InvalidProject, NotFound
from app.models import AuditLog, Donation, DonationReceipt, DonationStatus, PaymentMethod, ReceiptStatus, Role
from tests.helpers import collected


class TestAmountChecks:
    @pytest.mark.parametrize('amount', [0, -100, 499, 5000001, 12.5, True, None, '1000'])
    def test_out_of_bounds_or_not_cents(self, core, amount):
        with pytest.raises(InvalidAmount):
            core.ledger.check_amount(amount)

    @pytest.mark.parametrize('amount', [500, 2000, 5000000])
    def test_within_bounds(self, core, amount):
        core.ledger.check_amount(amount)

    def test_bounds_follow_configuration(self, app, core):
        app.config['DONATION_MIN_AMOUNT'] = 100
        core.ledger.check_amount(100)


class TestStartPayment:
    def test_opens_pending_donation_with_intent(self, db, core, gateway, donor, project):
        donation, client_secret = core.ledger.start_payment(donor, 2000, project_id=project.id)
        db.session.commit()

        assert donation.status == DonationStatus.PENDING.value
        assert donation.amount == 2000
        assert donation.project_id == project.id
        assert donation.gateway_intent_id.startswith('pi_')
        assert client_secret == f'{donation.gateway_intent_id}_secret'

        name, params = gateway.calls[-1]
        assert name == 'create_payment_intent'
        assert params['metadata'] == {'donation_id': str(donation.id), 'project_id': str(project.id)}
        assert params['receipt_email'] == 'alice@example.org'

    def test_guest_donor_is_stored_inline(self, db, core, guest_donor):
        donation, _ = core.ledger.start_payment(guest_donor, 1500)
        db.session.commit()

        assert donation.user_id is None
        assert donation.contact_email == 'guest@example.org'
        assert donation.donor_name == 'Gaston Invite'
        assert donation.donor_city == 'Lyon'

    def test_inactive_project_is_refused_before_the_gateway(self, core, gateway, donor, draft_project):
        with pytest.raises(InvalidProject):
            core.ledger.start_payment(donor, 2000, project_id=draft_project.id)

        assert gateway.calls == []
        assert Donation.query.count() == 0

    def test_unknown_project(self, core, donor):
        with pytest.raises(InvalidProject):
            core.ledger.start_payment(donor, 2000, project_id=999)

    def test_invalid_amount_never_reaches_the_gateway(self, core, gateway, donor):
        with pytest.raises(InvalidAmount):
            core.ledger.start_payment(donor, 100)

        assert gateway.calls == []

    def test_gateway_failure_keeps_nothing(self, db, core, gateway, donor, project):
        gateway.fail_on.add('create_payment_intent')

        with pytest.raises(GatewayError) as excinfo:
            core.ledger.start_payment(donor, 2000, project_id=project.id)

        assert excinfo.value.retryable is True
        db.session.commit()
        assert Donation.query.count() == 0


class TestComplete:
    def _pending(self, db, core, donor, project=None, **kwargs):
        donation, _ = core.ledger.start_payment(donor, 2500, project_id=project.id if project else None, **kwargs)
        db.session.commit()
        return donation

    def test_credits_project_and_issues_receipt(self, db, core, donor, project):
        donation = self._pending(db, core, donor, project)

        donation = core.ledger.complete(donation.id, gateway_charge_id='ch_1', paid_at=datetime(2026, 3, 4))
        db.session.commit()

        assert donation.status == DonationStatus.COMPLETED.value
        assert donation.gateway_charge_id == 'ch_1'
        assert donation.paid_at == datetime(2026, 3, 4)
        assert donation.receipt_number == 'RF-2026-00001'
        assert collected(db, project) == 2500
        assert DonationReceipt.query.filter_by(donation_id=donation.id).count() == 1

    def test_second_completion_is_a_no_op(self, db, core, donor, project):
        donation = self._pending(db, core, donor, project)

        core.ledger.complete(donation.id)
        core.ledger.complete(donation.id)
        db.session.commit()

        assert collected(db, project) == 2500
        assert DonationReceipt.query.filter_by(donation_id=donation.id).count() == 1

    def test_no_receipt_when_not_requested(self, db, core, donor, project):
        donation = self._pending(db, core, donor, project, receipt_requested=False)

        donation = core.ledger.complete(donation.id)
        db.session.commit()

        assert donation.receipt_number is None
        assert DonationReceipt.query.count() == 0
        assert collected(db, project) == 2500

    def test_without_project_nothing_is_credited(self, db, core, donor, project):
        donation = self._pending(db, core, donor)

        donation = core.ledger.complete(donation.id)
        db.session.commit()

        assert donation.status == DonationStatus.COMPLETED.value
        assert collected(db, project) == 0

    def test_failed_donation_cannot_complete(self, db, core, donor, project):
        donation = self._pending(db, core, donor, project)
        core.ledger.fail(donation.id)

        donation = core.ledger.complete(donation.id)
        db.session.commit()

        assert donation.status == DonationStatus.FAILED.value
        assert collected(db, project) == 0
        assert DonationReceipt.query.count() == 0

    def test_completed_donation_cannot_fail(self, db, core, donor):
        donation = self._pending(db, core, donor)
        core.ledger.complete(donation.id)

        donation = core.ledger.fail(donation.id)

        assert donation.status == DonationStatus.COMPLETED.value

    def test_unknown_donation(self, core):
        with pytest.raises(NotFound):
            core.ledger.complete(12345)


class TestAdministrativeReview:
    def _pending(self, db, core, donor, project=None):
        donation, _ = core.ledger.start_payment(donor, 4000, project_id=project.id if project else None)
        db.session.commit()
        return donation

    def test_validate_records_an_audit_entry(self, db, core, donor, project, admin):
        donation = self._pending(db, core, donor, project)

        donation = core.ledger.validate(donation.id, admin)
        db.session.commit()

        assert donation.status == DonationStatus.COMPLETED.value
        assert donation.payment_method == PaymentMethod.OFFLINE.value
        entry = AuditLog.query.one()
        assert entry.user_id == admin.id
        assert entry.action == 'DONATION_VALIDATE'
        assert entry.entity_type == 'Donation'
        assert entry.entity_id == str(donation.id)
        assert entry.old_values == {'status': 'pending'}
        assert entry.new_values == {'status': 'completed'}
        assert entry.ip_address is None

    def test_validate_after_the_gateway_completed(self, db, core, donor, project, admin):
        donation = self._pending(db, core, donor, project)
        core.ledger.complete(donation.id, gateway_charge_id='ch_1', paid_at=datetime(2026, 5, 2))
        db.session.commit()

        donation = core.ledger.validate(donation.id, admin)
        db.session.commit()

        assert donation.status == DonationStatus.COMPLETED.value
        assert donation.paid_at == datetime(2026, 5, 2)
        assert donation.payment_method == PaymentMethod.CARD.value
        assert collected(db, project) == 4000
        assert AuditLog.query.count() == 0

    @pytest.mark.parametrize('terminal', ['fail', 'cancel'])
    def test_validate_a_closed_donation(self, db, core, donor, admin, terminal):
        donation = self._pending(db, core, donor)
        getattr(core.ledger, terminal)(donation.id)

        with pytest.raises(IllegalTransition):
            core.ledger.validate(donation.id, admin)

    def test_reject_records_an_audit_entry(self, db, core, donor, admin):
        donation = self._pending(db, core, donor)

        donation = core.ledger.reject(donation.id, admin)
        db.session.commit()

        assert donation.status == DonationStatus.CANCELED.value
        entry = AuditLog.query.one()
        assert entry.action == 'DONATION_REJECT'
        assert entry.new_values == {'status': 'canceled'}
        assert [e.action for e in core.audit.for_entity('Donation', donation.id)] == ['DONATION_REJECT']

    def test_reject_a_completed_donation(self, db, core, donor, project, admin):
        donation = self._pending(db, core, donor, project)
        core.ledger.complete(donation.id)
        db.session.commit()

        with pytest.raises(IllegalTransition):
            core.ledger.reject(donation.id, admin)
        assert collected(db, project) == 4000


class TestDonorRole:
    def test_first_completion_makes_the_user_a_donor(self, db, core, donor, user):
        assert not user.has_role('donor')
        donation, _ = core.ledger.start_payment(donor, 2000)

        core.ledger.complete(donation.id)
        db.session.commit()

        db.session.refresh(user)
        assert user.has_role('donor')

    def test_role_is_granted_once(self, db, core, donor, user):
        for _ in range(2):
            donation, _ = core.ledger.start_payment(donor, 2000)
            core.ledger.complete(donation.id)
        db.session.commit()

        db.session.refresh(user)
        assert [role.name for role in user.roles] == ['donor']
        assert Role.query.filter_by(name='donor').count() == 1

    def test_guest_gifts_grant_nothing(self, db, core, guest_donor):
        donation, _ = core.ledger.start_payment(guest_donor, 2000)

        core.ledger.complete(donation.id)
        db.session.commit()

        assert Role.query.filter_by(name='donor').count() == 0

    def test_pending_donation_grants_nothing(self, db, core, donor, user):
        core.ledger.start_payment(donor, 2000)
        db.session.commit()

        db.session.refresh(user)
        assert not user.has_role('donor')


class TestConfirmationEmail:
    def test_sent_only_after_commit(self, db, core, donor, sent_emails):
        donation, _ = core.ledger.start_payment(donor, 3000)
        db.session.commit()

        core.ledger.complete(donation.id)
        assert sent_emails == []

        db.session.commit()
        assert len(sent_emails) == 1
        method, kwargs = sent_emails[0]
        assert method == 'send_donation_confirmation'
        assert kwargs['to'] == 'alice@example.org'
        assert kwargs['amount'] == 30.0
        assert kwargs['receipt_number'] == donation.receipt_number

    def test_discarded_on_rollback(self, db, core, donor, sent_emails):
        donation, _ = core.ledger.start_payment(donor, 3000)
        db.session.commit()

        core.ledger.complete(donation.id)
        db.session.rollback()
        db.session.commit()

        assert sent_emails == []
        assert db.session.get(Donation, donation.id).status == DonationStatus.PENDING.value

    def test_not_sent_for_a_lost_race(self, db, core, donor, sent_emails):
        donation, _ = core.ledger.start_payment(donor, 3000)
        core.ledger.complete(donation.id)
        db.session.commit()

        core.ledger.complete(donation.id)
        db.session.commit()

        assert len(sent_emails) == 1


class TestRefund:
    def _completed(self, db, core, donor, project):
        donation, _ = core.ledger.start_payment(donor, 4000, project_id=project.id)
        core.ledger.complete(donation.id, gateway_charge_id='ch_refund')
        db.session.commit()
        return donation

    def test_cancels_receipt_and_keeps_project_total(self, db, core, donor, project):
        donation = self._completed(db, core, donor, project)
        number = donation.receipt_number

        donation = core.ledger.refund(donation.id)
        db.session.commit()

        assert donation.status == DonationStatus.REFUNDED.value
        receipt = core.receipts.get_by_number(number)
        assert receipt.status == ReceiptStatus.CANCELED.value
        assert receipt.canceled_at is not None
        assert core.receipts.get_for_donation(donation.id) is None
        assert collected(db, project) == 4000

    def test_second_refund_is_a_no_op(self, db, core, donor, project):
        donation = self._completed(db, core, donor, project)
        core.ledger.refund(donation.id)

        donation = core.ledger.refund(donation.id)

        assert donation.status == DonationStatus.REFUNDED.value

    def test_pending_donation_cannot_be_refunded(self, db, core, donor):
        donation, _ = core.ledger.start_payment(donor, 4000)
        db.session.commit()

        with pytest.raises(IllegalTransition):
            core.ledger.refund(donation.id)


class TestLookupsAndStats:
    def test_find_by_gateway_references(self, db, core, donor):
        donation, _ = core.ledger.start_payment(donor, 1000)
        core.ledger.complete(donation.id, gateway_charge_id='ch_find')
        db.session.commit()

        assert core.ledger.find_by_intent(donation.gateway_intent_id).id == donation.id
        assert core.ledger.find_by_charge('ch_find').id == donation.id
        assert core.ledger.find_by_intent(None) is None
        assert core.ledger.find_by_charge('ch_missing') is None

    def test_list_for_user_only_returns_own_donations(self, db, core, donor, guest_donor):
        core.ledger.start_payment(donor, 1000)
        core.ledger.start_payment(donor, 2000)
        core.ledger.start_payment(guest_donor, 3000)
        db.session.commit()

        page = core.ledger.list_for_user(donor.user_id)

        assert page.total == 2
        assert {donation.amount for donation in page.items} == {1000, 2000}

    def test_stats_count_completed_donations_only(self, db, core, donor):
        first, _ = core.ledger.start_payment(donor, 1000)
        second, _ = core.ledger.start_payment(donor, 3000)
        core.ledger.start_payment(donor, 9000)
        core.ledger.complete(first.id)
        core.ledger.complete(second.id)
        db.session.commit()

        stats = core.ledger.stats()

        assert stats['count'] == 2
        assert stats['total_amount'] == 40.0
        assert stats['average_amount'] == 20.0
        assert len(stats['by_month']) == 12
        assert stats['by_month'][-1]['amount'] == 40.0
