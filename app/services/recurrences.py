"""
Recurring donations and their subscription state machine.

    ACTIVE  --pause-->  PAUSED  --resume-->  ACTIVE
    ACTIVE/PAUSED --cancel / gateway deleted--> CANCELED
    ACTIVE --gateway incomplete_expired--> EXPIRED

CANCELED and EXPIRED are terminal: later gateway notifications never bring a
recurrence back. Donor actions call the gateway first and only then apply the
guarded local update, so a gateway failure leaves the local state untouched.
"""
from flask import current_app
from sqlalchemy import update

from app.errors import Forbidden, IllegalTransition, NotFound
from app.extensions import db
from app.models import (Donation, DonationKind, DonationRecurrence, RecurrenceFrequency,
                        RecurrenceStatus)
from app.services.ledger import DonorRef
from app.services.notifications import notify_after_commit
from app.utils import add_months, utcnow

# Gateway subscription statuses under which the recurrence is still running
GATEWAY_RUNNING_STATUSES = ('active', 'trialing', 'past_due', 'unpaid', 'incomplete')


class RecurrenceManager:
    """Creates recurrences, applies billing cycles and keeps status in sync with the gateway"""

    def __init__(self, ledger, gateway, funds):
        self.ledger = ledger
        self.gateway = gateway
        self.funds = funds

    # ---- Creation ----

    def _customer_for(self, donor):
        """Reuse the donor's gateway customer when an earlier recurrence created one"""
        if donor.user_id is not None:
            previous = (DonationRecurrence.query
                        .filter(DonationRecurrence.user_id == donor.user_id,
                                DonationRecurrence.gateway_customer_id.isnot(None))
                        .order_by(DonationRecurrence.created_at.desc())
                        .first())
            if previous is not None:
                return previous.gateway_customer_id
        metadata = {'user_id': str(donor.user_id)} if donor.user_id is not None else {}
        return self.gateway.create_customer(donor.email, donor.display_name, metadata=metadata)

    def subscribe(self, donor, amount, frequency, project_id=None):
        """
        Start a recurring donation.

        Returns:
            (recurrence, client_secret) for confirming the first payment

        Raises:
            InvalidAmount, InvalidProject: validation failed, the gateway is not called
            GatewayError: the gateway refused; nothing is persisted
        """
        frequency = RecurrenceFrequency(frequency).value
        self.ledger.check_amount(amount)
        if project_id is not None:
            self.funds.ensure_accepting(project_id)

        currency = current_app.config.get('DONATION_CURRENCY', 'eur')
        customer_id = self._customer_for(donor)
        metadata = {'frequency': frequency}
        if donor.user_id is not None:
            metadata['user_id'] = str(donor.user_id)
        if project_id is not None:
            metadata['project_id'] = str(project_id)
        subscription = self.gateway.create_subscription(customer_id, amount, currency, frequency, metadata=metadata)

        recurrence = DonationRecurrence(
            amount=amount,
            currency=currency,
            frequency=frequency,
            status=RecurrenceStatus.ACTIVE.value,
            gateway_subscription_id=subscription.id,
            gateway_customer_id=customer_id,
            payment_count=0,
            project_id=project_id,
        )
        donor.apply_to(recurrence)
        db.session.add(recurrence)
        db.session.flush()

        current_app.logger.info(f'Recurrence {recurrence.id} created: {recurrence.amount_euros}€ {frequency} '
                                f'(subscription {subscription.id})')
        return recurrence, subscription.client_secret

    # ---- Billing cycles ----

    def find_by_subscription(self, subscription_id):
        if not subscription_id:
            return None
        return DonationRecurrence.query.filter_by(gateway_subscription_id=subscription_id).first()

    def on_billing_cycle_succeeded(self, subscription_id, invoice_id, charge_id=None, paid_at=None, amount_paid=None):
        """
        Record the donation collected by one billing cycle.

        Idempotent per invoice: the gateway reports the same invoice under
        several event types.
        """
        if invoice_id:
            existing = Donation.query.filter_by(gateway_invoice_id=invoice_id).first()
            if existing is not None:
                current_app.logger.info(f'Invoice {invoice_id} already recorded as donation {existing.id}')
                return existing

        recurrence = self.find_by_subscription(subscription_id)
        if recurrence is None:
            current_app.logger.warning(f'Billing cycle for unknown subscription {subscription_id} ignored')
            return None
        if amount_paid is not None and amount_paid <= 0:
            current_app.logger.info(f'Invoice {invoice_id} collected nothing, no donation recorded')
            return None

        paid_at = paid_at or utcnow()
        donation = self.ledger.open(
            DonorRef.for_record(recurrence),
            amount_paid or recurrence.amount,
            kind=DonationKind.RECURRING.value,
            project_id=recurrence.project_id,
            receipt_requested=True,
            recurrence_id=recurrence.id,
            gateway_invoice_id=invoice_id,
            validate=False,
        )
        donation = self.ledger.complete(donation.id, gateway_charge_id=charge_id, paid_at=paid_at)

        months = RecurrenceFrequency(recurrence.frequency).months
        db.session.execute(
            update(DonationRecurrence)
            .where(DonationRecurrence.id == recurrence.id)
            .values(payment_count=DonationRecurrence.payment_count + 1,
                    last_payment_date=paid_at,
                    next_payment_date=add_months(paid_at, months),
                    updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        db.session.refresh(recurrence)
        current_app.logger.info(f'Recurrence {recurrence.id}: payment {recurrence.payment_count} recorded '
                                f'as donation {donation.id}')
        return donation

    def on_billing_cycle_failed(self, subscription_id, invoice_id=None):
        """No donation is recorded; the donor is told the cycle could not be charged"""
        recurrence = self.find_by_subscription(subscription_id)
        if recurrence is None:
            current_app.logger.warning(f'Failed billing for unknown subscription {subscription_id} ignored')
            return None
        current_app.logger.warning(f'Billing failed for recurrence {recurrence.id} (invoice {invoice_id})')
        notify_after_commit(
            'send_billing_failed',
            to=recurrence.contact_email,
            donor_name=recurrence.donor_name,
            amount=recurrence.amount_euros,
        )
        return recurrence

    # ---- Status ----

    def _transition(self, recurrence, sources, target):
        """Guarded status change; returns True when this call applied it"""
        values = {'status': target.value, 'updated_at': utcnow()}
        if target == RecurrenceStatus.CANCELED:
            values['canceled_at'] = utcnow()
        result = db.session.execute(
            update(DonationRecurrence)
            .where(DonationRecurrence.id == recurrence.id,
                   DonationRecurrence.status.in_([source.value for source in sources]))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        db.session.refresh(recurrence)
        won = result.rowcount == 1
        if won:
            current_app.logger.info(f'Recurrence {recurrence.id} -> {target.value}')
            if target == RecurrenceStatus.CANCELED:
                notify_after_commit(
                    'send_recurrence_canceled',
                    to=recurrence.contact_email,
                    donor_name=recurrence.donor_name,
                    amount=recurrence.amount_euros,
                )
        return won

    def _target_for_gateway(self, recurrence, status, deleted, pause_requested):
        if deleted or status == 'canceled':
            return RecurrenceStatus.CANCELED
        if status == 'incomplete_expired':
            return RecurrenceStatus.EXPIRED
        if status == 'paused':
            return RecurrenceStatus.PAUSED
        if status in GATEWAY_RUNNING_STATUSES:
            # A donor pause is a pending cancel_at_period_end on an active subscription
            if pause_requested and recurrence.status == RecurrenceStatus.PAUSED.value:
                return RecurrenceStatus.PAUSED
            return RecurrenceStatus.ACTIVE
        return None

    def apply_gateway_status(self, subscription_id, status, deleted=False, pause_requested=False):
        """Align a recurrence with the subscription status reported by the gateway"""
        recurrence = self.find_by_subscription(subscription_id)
        if recurrence is None:
            current_app.logger.warning(f'Status update for unknown subscription {subscription_id} ignored')
            return None
        if recurrence.status in RecurrenceStatus.terminal_statuses():
            current_app.logger.info(f'Recurrence {recurrence.id} is {recurrence.status}, '
                                    f'gateway status {status} ignored')
            return recurrence

        target = self._target_for_gateway(recurrence, status, deleted, pause_requested)
        if target is None:
            current_app.logger.warning(f'Unhandled subscription status {status} for recurrence {recurrence.id}')
            return recurrence
        if target.value == recurrence.status:
            return recurrence

        sources = [RecurrenceStatus.ACTIVE, RecurrenceStatus.PAUSED]
        if not self._transition(recurrence, sources, target):
            current_app.logger.info(f'Recurrence {recurrence.id} changed concurrently, now {recurrence.status}')
        return recurrence

    # ---- Donor actions ----

    def get(self, recurrence_id):
        recurrence = db.session.get(DonationRecurrence, recurrence_id)
        if recurrence is None:
            raise NotFound(recurrence_id=recurrence_id)
        return recurrence

    def _owned(self, recurrence_id, requester):
        recurrence = self.get(recurrence_id)
        if requester is None or recurrence.user_id != requester.id:
            raise Forbidden(recurrence_id=recurrence_id)
        return recurrence

    def get_for(self, recurrence_id, requester):
        """Recurrence visible to its owner and to administrators"""
        recurrence = self.get(recurrence_id)
        if recurrence.user_id != requester.id and not requester.has_role('admin'):
            raise Forbidden(recurrence_id=recurrence_id)
        return recurrence

    def pause(self, recurrence_id, requester):
        recurrence = self._owned(recurrence_id, requester)
        if recurrence.status != RecurrenceStatus.ACTIVE.value:
            raise IllegalTransition(recurrence_id=recurrence_id, status=recurrence.status)
        if recurrence.gateway_subscription_id:
            self.gateway.pause_subscription(recurrence.gateway_subscription_id)
        if not self._transition(recurrence, [RecurrenceStatus.ACTIVE], RecurrenceStatus.PAUSED):
            raise IllegalTransition(recurrence_id=recurrence_id, status=recurrence.status)
        return recurrence

    def resume(self, recurrence_id, requester):
        recurrence = self._owned(recurrence_id, requester)
        if recurrence.status != RecurrenceStatus.PAUSED.value:
            raise IllegalTransition(recurrence_id=recurrence_id, status=recurrence.status)
        if recurrence.gateway_subscription_id:
            self.gateway.resume_subscription(recurrence.gateway_subscription_id)
        if not self._transition(recurrence, [RecurrenceStatus.PAUSED], RecurrenceStatus.ACTIVE):
            raise IllegalTransition(recurrence_id=recurrence_id, status=recurrence.status)
        return recurrence

    def cancel(self, recurrence_id, requester):
        recurrence = self._owned(recurrence_id, requester)
        if recurrence.status not in RecurrenceStatus.can_be_canceled_from():
            raise IllegalTransition(recurrence_id=recurrence_id, status=recurrence.status)
        if recurrence.gateway_subscription_id:
            self.gateway.cancel_subscription(recurrence.gateway_subscription_id)
        sources = [RecurrenceStatus.ACTIVE, RecurrenceStatus.PAUSED]
        if not self._transition(recurrence, sources, RecurrenceStatus.CANCELED):
            raise IllegalTransition(recurrence_id=recurrence_id, status=recurrence.status)
        return recurrence

    # ---- Listings ----

    def list_for_user(self, user_id):
        return (DonationRecurrence.query
                .filter_by(user_id=user_id)
                .order_by(DonationRecurrence.created_at.desc(), DonationRecurrence.id.desc())
                .all())

    def list_all(self, page=1, limit=20, status=None):
        query = DonationRecurrence.query
        if status:
            query = query.filter_by(status=status)
        return (query
                .order_by(DonationRecurrence.created_at.desc(), DonationRecurrence.id.desc())
                .paginate(page=page, per_page=limit, error_out=False))

    def stats(self):
        """Active recurrences and their revenue normalized to one month"""
        active = DonationRecurrence.query.filter_by(status=RecurrenceStatus.ACTIVE.value).all()
        monthly_revenue = sum(recurrence.monthly_amount for recurrence in active)
        return {
            'active_count': len(active),
            'monthly_revenue': round(monthly_revenue / 100, 2),
            'average_amount': round(sum(r.amount for r in active) / len(active) / 100, 2) if active else 0,
            'by_status': {
                status: DonationRecurrence.query.filter_by(status=status).count()
                for status in RecurrenceStatus.all()
            },
        }
