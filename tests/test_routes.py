"""JSON API: authentication, permissions and request validation."""

import pytest

from app.models import AuditLog, Donation, DonationStatus, PaymentMethod, RecurrenceStatus
from app.utils import utcnow
from tests.helpers import auth_headers, collected


def _completed(db, core, donor, amount=2000, paid_at=None, **kwargs):
    donation, _ = core.ledger.start_payment(donor, amount, **kwargs)
    donation = core.ledger.complete(donation.id, paid_at=paid_at)
    db.session.commit()
    return donation


class TestDonationIntent:
    def test_guest_donation(self, client, db, project):
        response = client.post('/api/donations/intent', json={
            'amount': '25.50',
            'email': 'guest@example.org',
            'first_name': 'Gaston',
            'last_name': 'Invite',
            'project_id': project.id,
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['amount'] == 25.5
        assert data['currency'] == 'eur'
        assert data['client_secret'].endswith('_secret')

        donation = db.session.get(Donation, data['donation_id'])
        assert donation.amount == 2550
        assert donation.status == DonationStatus.PENDING.value
        assert donation.donor_email == 'guest@example.org'

    def test_signed_in_donor(self, client, db, user):
        response = client.post('/api/donations/intent', json={'amount': 10}, headers=auth_headers(user))

        assert response.status_code == 201
        assert db.session.get(Donation, response.get_json()['donation_id']).user_id == user.id

    def test_guest_needs_an_email(self, client, db):
        response = client.post('/api/donations/intent', json={'amount': 10})

        assert response.status_code == 400
        assert response.get_json()['error'] == 'invalid_request'

    @pytest.mark.parametrize('amount', ['abc', None, '2', '100000'])
    def test_invalid_amount(self, client, db, amount):
        response = client.post('/api/donations/intent', json={'amount': amount, 'email': 'guest@example.org'})

        assert response.status_code == 400
        assert response.get_json()['error'] == 'invalid_amount'

    def test_inactive_project(self, client, db, draft_project):
        response = client.post('/api/donations/intent', json={
            'amount': 10, 'email': 'guest@example.org', 'project_id': draft_project.id,
        })

        assert response.status_code == 400
        assert response.get_json()['error'] == 'invalid_project'

    def test_malformed_project_id(self, client, db):
        response = client.post('/api/donations/intent', json={
            'amount': 10, 'email': 'guest@example.org', 'project_id': 'maraude',
        })

        assert response.status_code == 400

    def test_gateway_outage(self, client, db, gateway):
        gateway.fail_on.add('create_payment_intent')

        response = client.post('/api/donations/intent', json={'amount': 10, 'email': 'guest@example.org'})

        assert response.status_code == 503
        assert response.get_json()['retryable'] is True
        assert Donation.query.count() == 0


class TestDonationAccess:
    def test_requires_authentication(self, client, db):
        response = client.get('/api/donations/me', headers={'Accept': 'application/json'})

        assert response.status_code == 401

    def test_my_donations(self, client, db, core, user, donor, guest_donor):
        core.ledger.start_payment(donor, 1000)
        core.ledger.start_payment(guest_donor, 2000)
        db.session.commit()

        response = client.get('/api/donations/me', headers=auth_headers(user))

        assert response.status_code == 200
        body = response.get_json()
        assert body['meta']['total'] == 1
        assert body['data'][0]['amount'] == 10.0

    def test_owner_or_admin_only(self, client, db, core, donor, other_user, admin):
        donation, _ = core.ledger.start_payment(donor, 1000)
        db.session.commit()

        assert client.get(f'/api/donations/{donation.id}', headers=auth_headers(other_user)).status_code == 403
        assert client.get(f'/api/donations/{donation.id}', headers=auth_headers(admin)).status_code == 200

    def test_unknown_donation(self, client, db, user):
        response = client.get('/api/donations/999', headers=auth_headers(user))

        assert response.status_code == 404

    def test_admin_listing_and_stats(self, client, db, core, donor, user, admin):
        _completed(db, core, donor, amount=3000)
        core.ledger.start_payment(donor, 1000)
        db.session.commit()

        assert client.get('/api/donations', headers=auth_headers(user)).status_code == 403

        listing = client.get('/api/donations?status=completed', headers=auth_headers(admin)).get_json()
        assert listing['meta']['total'] == 1

        stats = client.get('/api/donations/stats', headers=auth_headers(admin)).get_json()['data']
        assert stats['count'] == 1
        assert stats['total_amount'] == 30.0


class TestAdminValidation:
    def test_validate_offline_donation(self, client, db, core, guest_donor, project, admin, sent_emails):
        donation, _ = core.ledger.start_payment(guest_donor, 4000, project_id=project.id)
        db.session.commit()

        response = client.post(f'/api/donations/{donation.id}/validate', headers=auth_headers(admin))

        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['status'] == DonationStatus.COMPLETED.value
        assert data['payment_method'] == PaymentMethod.OFFLINE.value
        assert data['receipt_number'].startswith('RF-')
        assert collected(db, project) == 4000
        assert sent_emails[0][1]['to'] == 'guest@example.org'

    def test_validate_twice_returns_the_completed_donation(self, client, db, core, donor, project, admin):
        donation, _ = core.ledger.start_payment(donor, 4000, project_id=project.id)
        db.session.commit()

        first = client.post(f'/api/donations/{donation.id}/validate', headers=auth_headers(admin))
        second = client.post(f'/api/donations/{donation.id}/validate', headers=auth_headers(admin))

        assert second.status_code == 200
        assert second.get_json()['data'] == first.get_json()['data']
        assert collected(db, project) == 4000
        assert AuditLog.query.count() == 1

    def test_validate_after_gateway_completion(self, client, db, core, donor, project, admin, sent_emails):
        donation, _ = core.ledger.start_payment(donor, 4000, project_id=project.id)
        db.session.commit()
        core.ledger.complete(donation.id, gateway_charge_id='ch_1')
        db.session.commit()
        paid_at = db.session.get(Donation, donation.id).paid_at

        response = client.post(f'/api/donations/{donation.id}/validate', headers=auth_headers(admin))

        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['status'] == DonationStatus.COMPLETED.value
        assert data['payment_method'] == PaymentMethod.CARD.value
        assert db.session.get(Donation, donation.id).paid_at == paid_at
        assert collected(db, project) == 4000
        assert len(sent_emails) == 1

    def test_validate_failed_donation_conflicts(self, client, db, core, donor, admin):
        donation, _ = core.ledger.start_payment(donor, 4000)
        core.ledger.fail(donation.id)
        db.session.commit()

        response = client.post(f'/api/donations/{donation.id}/validate', headers=auth_headers(admin))

        assert response.status_code == 409
        assert db.session.get(Donation, donation.id).status == DonationStatus.FAILED.value

    def test_validation_is_audited(self, client, db, core, donor, admin):
        donation, _ = core.ledger.start_payment(donor, 4000)
        db.session.commit()

        client.post(f'/api/donations/{donation.id}/validate', headers=auth_headers(admin),
                    environ_base={'REMOTE_ADDR': '203.0.113.7'})

        entry = AuditLog.query.one()
        assert entry.user_id == admin.id
        assert entry.action == 'DONATION_VALIDATE'
        assert entry.ip_address == '203.0.113.7'

    def test_reject(self, client, db, core, donor, admin):
        donation, _ = core.ledger.start_payment(donor, 4000)
        db.session.commit()

        response = client.post(f'/api/donations/{donation.id}/reject', headers=auth_headers(admin))

        assert response.status_code == 200
        assert response.get_json()['data']['status'] == DonationStatus.CANCELED.value
        assert AuditLog.query.one().action == 'DONATION_REJECT'

    def test_reject_completed_donation_conflicts(self, client, db, core, donor, admin):
        donation = _completed(db, core, donor)

        response = client.post(f'/api/donations/{donation.id}/reject', headers=auth_headers(admin))

        assert response.status_code == 409
        assert AuditLog.query.count() == 0

    def test_donors_cannot_validate(self, client, db, core, donor, user):
        donation, _ = core.ledger.start_payment(donor, 4000)
        db.session.commit()

        response = client.post(f'/api/donations/{donation.id}/validate', headers=auth_headers(user))

        assert response.status_code == 403
        assert db.session.get(Donation, donation.id).status == DonationStatus.PENDING.value

    def test_donor_then_admin_in_one_session(self, client, db, core, donor, user, admin):
        donation, _ = core.ledger.start_payment(donor, 4000)
        db.session.commit()
        url = f'/api/donations/{donation.id}/validate'

        assert client.post(url, headers=auth_headers(user)).status_code == 403
        assert client.post(url, headers=auth_headers(admin)).status_code == 200
        assert client.post(url, headers=auth_headers(user)).status_code == 403


class TestRecurrenceRoutes:
    def _create(self, client, user, **body):
        payload = {'amount': 20, 'frequency': 'monthly'}
        payload.update(body)
        return client.post('/api/recurrences', json=payload, headers=auth_headers(user))

    def test_create(self, client, db, user, project):
        response = self._create(client, user, project_id=project.id)

        assert response.status_code == 201
        body = response.get_json()
        assert body['data']['status'] == RecurrenceStatus.ACTIVE.value
        assert body['data']['amount'] == 20.0
        assert body['client_secret'].endswith('_secret')

    def test_invalid_frequency(self, client, db, user):
        response = self._create(client, user, frequency='weekly')

        assert response.status_code == 400
        assert response.get_json()['error'] == 'invalid_request'

    def test_requires_authentication(self, client, db):
        response = client.post('/api/recurrences', json={'amount': 20},
                               headers={'Accept': 'application/json'})

        assert response.status_code == 401

    def test_cancel_paused_recurrence_twice(self, client, db, user, sent_emails):
        recurrence_id = self._create(client, user).get_json()['data']['id']

        paused = client.patch(f'/api/recurrences/{recurrence_id}/pause', headers=auth_headers(user))
        assert paused.get_json()['data']['status'] == RecurrenceStatus.PAUSED.value

        canceled = client.patch(f'/api/recurrences/{recurrence_id}/cancel', headers=auth_headers(user))
        assert canceled.status_code == 200
        data = canceled.get_json()['data']
        assert data['status'] == RecurrenceStatus.CANCELED.value
        assert data['canceled_at'] is not None

        again = client.patch(f'/api/recurrences/{recurrence_id}/cancel', headers=auth_headers(user))
        assert again.status_code == 409
        detail = client.get(f'/api/recurrences/{recurrence_id}', headers=auth_headers(user)).get_json()['data']
        assert detail['canceled_at'] == data['canceled_at']
        assert len(sent_emails) == 1

    def test_other_donor_cannot_act(self, client, db, user, other_user):
        recurrence_id = self._create(client, user).get_json()['data']['id']

        for action in ('pause', 'cancel'):
            response = client.patch(f'/api/recurrences/{recurrence_id}/{action}', headers=auth_headers(other_user))
            assert response.status_code == 403
        assert client.get(f'/api/recurrences/{recurrence_id}', headers=auth_headers(other_user)).status_code == 403

    def test_gateway_outage_keeps_status(self, client, db, gateway, user):
        recurrence_id = self._create(client, user).get_json()['data']['id']
        gateway.fail_on.add('pause_subscription')

        response = client.patch(f'/api/recurrences/{recurrence_id}/pause', headers=auth_headers(user))

        assert response.status_code == 503
        detail = client.get(f'/api/recurrences/{recurrence_id}', headers=auth_headers(user)).get_json()['data']
        assert detail['status'] == RecurrenceStatus.ACTIVE.value

    def test_detail_lists_cycle_donations(self, client, db, core, user):
        recurrence_id = self._create(client, user).get_json()['data']['id']
        recurrence = core.recurrences.get(recurrence_id)
        core.recurrences.on_billing_cycle_succeeded(recurrence.gateway_subscription_id, 'in_1')
        db.session.commit()

        detail = client.get(f'/api/recurrences/{recurrence_id}', headers=auth_headers(user)).get_json()['data']

        assert detail['payment_count'] == 1
        assert [donation['kind'] for donation in detail['donations']] == ['recurring']

    def test_admin_listing_and_stats(self, client, db, user, admin):
        self._create(client, user)
        self._create(client, user, amount=30, frequency='quarterly')

        listing = client.get('/api/recurrences?status=active', headers=auth_headers(admin)).get_json()
        assert listing['meta']['total'] == 2

        stats = client.get('/api/recurrences/stats', headers=auth_headers(admin)).get_json()['data']
        assert stats['active_count'] == 2
        assert stats['monthly_revenue'] == 30.0

        assert client.get('/api/recurrences/stats', headers=auth_headers(user)).status_code == 403


class TestReceiptRoutes:
    def test_download(self, client, db, core, donor, user):
        donation = _completed(db, core, donor)

        response = client.get(f'/api/receipts/{donation.receipt_number}/download', headers=auth_headers(user))

        assert response.status_code == 200
        assert response.headers['Content-Type'].startswith('text/html')
        assert f'filename={donation.receipt_number}.html' in response.headers['Content-Disposition']
        assert donation.receipt_number in response.get_data(as_text=True)

    def test_download_of_someone_else(self, client, db, core, donor, other_user, admin):
        donation = _completed(db, core, donor)
        url = f'/api/receipts/{donation.receipt_number}/download'

        assert client.get(url, headers=auth_headers(other_user)).status_code == 403
        assert client.get(url, headers=auth_headers(admin)).status_code == 200

    def test_canceled_receipt_cannot_be_downloaded(self, client, db, core, donor, user):
        donation = _completed(db, core, donor)
        core.ledger.refund(donation.id)
        db.session.commit()

        response = client.get(f'/api/receipts/{donation.receipt_number}/download', headers=auth_headers(user))

        assert response.status_code == 404

    def test_receipt_of_a_donation(self, client, db, core, donor, user):
        donation = _completed(db, core, donor)

        response = client.get(f'/api/donations/{donation.id}/receipt', headers=auth_headers(user))

        assert response.status_code == 200
        assert response.get_json()['data']['receipt_number'] == donation.receipt_number

    def test_annual_receipt(self, client, db, core, donor, user):
        year = utcnow().year
        _completed(db, core, donor, amount=2000)
        _completed(db, core, donor, amount=3000)

        response = client.post(f'/api/receipts/annual/{year}', headers=auth_headers(user))

        assert response.status_code == 201
        data = response.get_json()['data']
        assert data['kind'] == 'annual'
        assert data['amount'] == 50.0
        assert data['donations_count'] == 2

    def test_annual_receipt_without_donations(self, client, db, user):
        response = client.post(f'/api/receipts/annual/{utcnow().year}', headers=auth_headers(user))

        assert response.status_code == 404

    def test_annual_receipt_for_another_donor(self, client, db, core, donor, user, other_user, admin):
        year = utcnow().year
        _completed(db, core, donor)
        url = f'/api/receipts/annual/{year}?user_id={user.id}'

        assert client.post(url, headers=auth_headers(other_user)).status_code == 403
        assert client.post(url, headers=auth_headers(admin)).status_code == 201

    def test_future_year(self, client, db, user):
        response = client.post(f'/api/receipts/annual/{utcnow().year + 1}', headers=auth_headers(user))

        assert response.status_code == 404
