"""
Donation ledger.

Every status change goes through a conditional UPDATE guarded on the expected
source status, so a webhook and an administrator racing on the same donation
cannot both win. Only the winner of PENDING -> COMPLETED credits the project,
issues the receipt and notifies the donor.
"""
from dataclasses import dataclass
from typing import Optional

from flask import current_app
from sqlalchemy import func, update

from app import extensions
from app.errors import GatewayError, IllegalTransition, InvalidAmount, NotFound
from app.extensions import db
from app.models import Donation, DonationKind, DonationStatus, PaymentMethod
from app.services.notifications import notify_after_commit
from app.utils import add_months, utcnow

DONOR_ROLE = 'donor'


@dataclass(frozen=True)
class DonorRef:
    """Who gives: an account, or an inline identity for gifts made without one"""
    user_id: Optional[int] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    address: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None

    @classmethod
    def for_user(cls, user):
        return cls(user_id=user.id, email=user.email, first_name=user.first_name, last_name=user.last_name)

    @classmethod
    def for_record(cls, record):
        """Donor of an existing donation or recurrence"""
        return cls(
            user_id=record.user_id,
            email=record.donor_email,
            first_name=record.donor_first_name,
            last_name=record.donor_last_name,
            address=record.donor_address,
            postal_code=record.donor_postal_code,
            city=record.donor_city,
        )

    @property
    def display_name(self):
        return f'{self.first_name or ""} {self.last_name or ""}'.strip()

    def apply_to(self, record):
        """Copy the donor reference onto a Donation or DonationRecurrence"""
        record.user_id = self.user_id
        if self.user_id is None:
            record.donor_email = self.email
            record.donor_first_name = self.first_name
            record.donor_last_name = self.last_name
            record.donor_address = self.address
            record.donor_postal_code = self.postal_code
            record.donor_city = self.city


class DonationLedger:
    """Creates donations and moves them through their lifecycle"""

    def __init__(self, funds, receipts, gateway, audit):
        self.funds = funds
        self.receipts = receipts
        self.gateway = gateway
        self.audit = audit

    # ---- Creation ----

    def check_amount(self, amount):
        """Raise InvalidAmount unless amount (in cents) is within the configured bounds"""
        minimum = current_app.config.get('DONATION_MIN_AMOUNT', 500)
        maximum = current_app.config.get('DONATION_MAX_AMOUNT', 5000000)
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise InvalidAmount(amount=amount)
        if amount < minimum or amount > maximum:
            raise InvalidAmount(amount=amount, minimum=minimum, maximum=maximum)

    def open(self, donor, amount, kind=DonationKind.ONE_TIME.value, project_id=None,
             receipt_requested=True, is_anonymous=False, payment_method=PaymentMethod.CARD.value,
             recurrence_id=None, gateway_invoice_id=None, validate=True):
        """
        Record a new PENDING donation.

        validate=False skips the amount and project checks, for money the gateway
        has already collected on a standing recurrence.

        Raises:
            InvalidAmount: amount outside [DONATION_MIN_AMOUNT, DONATION_MAX_AMOUNT]
            InvalidProject: project_id does not designate an ACTIVE project
        """
        if validate:
            self.check_amount(amount)
            if project_id is not None:
                self.funds.ensure_accepting(project_id)

        donation = Donation(
            amount=amount,
            currency=current_app.config.get('DONATION_CURRENCY', 'eur'),
            kind=kind,
            status=DonationStatus.PENDING.value,
            payment_method=payment_method,
            is_anonymous=is_anonymous,
            receipt_requested=receipt_requested,
            project_id=project_id,
            recurrence_id=recurrence_id,
            gateway_invoice_id=gateway_invoice_id,
        )
        donor.apply_to(donation)
        db.session.add(donation)
        db.session.flush()
        current_app.logger.info(f'Donation {donation.id} opened: {donation.amount_euros}€ ({kind})')
        return donation

    def start_payment(self, donor, amount, project_id=None, receipt_requested=True, is_anonymous=False):
        """
        Open a one-time donation and its gateway payment intent.

        Returns:
            (donation, client_secret) for the donor-side payment confirmation

        Raises:
            GatewayError: the intent could not be created; nothing is kept
        """
        donation = self.open(donor, amount, project_id=project_id,
                             receipt_requested=receipt_requested, is_anonymous=is_anonymous)
        metadata = {'donation_id': str(donation.id)}
        if project_id is not None:
            metadata['project_id'] = str(project_id)
        try:
            intent = self.gateway.create_payment_intent(amount, donation.currency, metadata,
                                                        receipt_email=donor.email)
        except GatewayError:
            db.session.rollback()
            raise
        donation.gateway_intent_id = intent.id
        db.session.flush()
        return donation, intent.client_secret

    # ---- Transitions ----

    def _transition(self, donation_id, source, target, **values):
        """
        Move donation_id from source to target if it is still in source.

        Returns:
            (donation, won) with the donation reloaded from the database
        """
        values['status'] = target.value
        values['updated_at'] = utcnow()
        result = db.session.execute(
            update(Donation)
            .where(Donation.id == donation_id, Donation.status == source.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        donation = db.session.get(Donation, donation_id, populate_existing=True)
        if donation is None:
            raise NotFound(donation_id=donation_id)
        won = result.rowcount == 1
        if won:
            current_app.logger.info(f'Donation {donation_id}: {source.value} -> {target.value}')
        else:
            current_app.logger.info(f'Donation {donation_id} already {donation.status}, '
                                    f'{target.value} ignored')
        return donation, won

    def complete(self, donation_id, gateway_charge_id=None, paid_at=None, payment_method=None):
        """
        PENDING -> COMPLETED, then credit the project, issue the receipt and
        queue the donor confirmation. A donation no longer PENDING is returned
        unchanged.
        """
        donation, _ = self._complete(donation_id, gateway_charge_id=gateway_charge_id,
                                     paid_at=paid_at, payment_method=payment_method)
        return donation

    def _complete(self, donation_id, gateway_charge_id=None, paid_at=None, payment_method=None):
        values = {'paid_at': paid_at or utcnow()}
        if gateway_charge_id:
            values['gateway_charge_id'] = gateway_charge_id
        if payment_method:
            values['payment_method'] = payment_method

        donation, won = self._transition(donation_id, DonationStatus.PENDING, DonationStatus.COMPLETED, **values)
        if not won:
            return donation, False

        self.funds.on_donation_completed(donation)
        self._grant_donor_role(donation.user)
        if donation.receipt_requested:
            self.receipts.allocate(donation)

        notify_after_commit(
            'send_donation_confirmation',
            to=donation.contact_email,
            donor_name=donation.donor_name,
            amount=donation.amount_euros,
            receipt_number=donation.receipt_number,
        )
        return donation, True

    def _grant_donor_role(self, user):
        if user is None or user.has_role(DONOR_ROLE):
            return
        datastore = extensions.user_datastore
        role = datastore.find_or_create_role(DONOR_ROLE, description='Donor')
        datastore.add_role_to_user(user, role)
        current_app.logger.info(f'User {user.id} is now a donor')

    def fail(self, donation_id):
        donation, _ = self._transition(donation_id, DonationStatus.PENDING, DonationStatus.FAILED)
        return donation

    def cancel(self, donation_id):
        donation, _ = self._transition(donation_id, DonationStatus.PENDING, DonationStatus.CANCELED)
        return donation

    # ---- Administrative review ----

    def validate(self, donation_id, admin):
        """
        Confirm an offline donation on an administrator's behalf.

        A donation the gateway already completed is returned as is, so a retried
        or late validation succeeds without counting the money twice.

        Raises:
            IllegalTransition: the donation failed, was canceled or was refunded
        """
        donation, won = self._complete(donation_id, paid_at=utcnow(), payment_method=PaymentMethod.OFFLINE.value)
        if donation.status != DonationStatus.COMPLETED.value:
            raise IllegalTransition(donation_id=donation_id, status=donation.status)
        if won:
            self.audit.log(admin.id, 'DONATION_VALIDATE', 'Donation', donation.id,
                           {'status': DonationStatus.PENDING.value},
                           {'status': DonationStatus.COMPLETED.value})
        return donation

    def reject(self, donation_id, admin):
        """
        Cancel a pending donation on an administrator's behalf.

        Raises:
            IllegalTransition: the donation is neither PENDING nor already CANCELED
        """
        donation, won = self._transition(donation_id, DonationStatus.PENDING, DonationStatus.CANCELED)
        if donation.status != DonationStatus.CANCELED.value:
            raise IllegalTransition(donation_id=donation_id, status=donation.status)
        if won:
            self.audit.log(admin.id, 'DONATION_REJECT', 'Donation', donation.id,
                           {'status': DonationStatus.PENDING.value},
                           {'status': DonationStatus.CANCELED.value})
        return donation

    def refund(self, donation_id):
        """
        COMPLETED -> REFUNDED and cancel the receipt. The project total keeps
        the amount (it reports gross funds raised).

        Raises:
            IllegalTransition: the donation was never completed
        """
        donation = self.get(donation_id)
        if donation.status == DonationStatus.REFUNDED.value:
            return donation

        donation, won = self._transition(donation_id, DonationStatus.COMPLETED, DonationStatus.REFUNDED)
        if not won:
            if donation.status == DonationStatus.REFUNDED.value:
                return donation
            raise IllegalTransition(donation_id=donation_id, status=donation.status)

        self.receipts.cancel(donation.id)
        return donation

    # ---- Lookups ----

    def get(self, donation_id):
        donation = db.session.get(Donation, donation_id)
        if donation is None:
            raise NotFound(donation_id=donation_id)
        return donation

    def find_by_intent(self, intent_id):
        if not intent_id:
            return None
        return Donation.query.filter_by(gateway_intent_id=intent_id).first()

    def find_by_charge(self, charge_id):
        if not charge_id:
            return None
        return Donation.query.filter_by(gateway_charge_id=charge_id).first()

    def list_for_user(self, user_id, page=1, limit=20):
        return (Donation.query
                .filter_by(user_id=user_id)
                .order_by(Donation.created_at.desc(), Donation.id.desc())
                .paginate(page=page, per_page=limit, error_out=False))

    def list_all(self, page=1, limit=20, status=None):
        query = Donation.query
        if status:
            query = query.filter_by(status=status)
        return (query
                .order_by(Donation.created_at.desc(), Donation.id.desc())
                .paginate(page=page, per_page=limit, error_out=False))

    def stats(self):
        """Completed totals overall and per month over the last twelve months"""
        completed = Donation.status == DonationStatus.COMPLETED.value
        total, count = db.session.query(
            func.coalesce(func.sum(Donation.amount), 0),
            func.count(Donation.id),
        ).filter(completed).one()

        this_month = utcnow().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        months = [add_months(this_month, -offset) for offset in range(11, -1, -1)]
        by_month = {month.strftime('%Y-%m'): 0 for month in months}
        rows = (db.session.query(Donation.paid_at, Donation.amount)
                .filter(completed, Donation.paid_at >= months[0])
                .all())
        for paid_at, amount in rows:
            key = paid_at.strftime('%Y-%m')
            if key in by_month:
                by_month[key] += amount

        return {
            'total_amount': total / 100,
            'count': count,
            'average_amount': round(total / count / 100, 2) if count else 0,
            'by_month': [{'month': month, 'amount': amount / 100} for month, amount in by_month.items()],
        }
