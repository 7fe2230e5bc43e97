"""
Fiscal receipt numbering and issuance.

Numbers come from one counter row per (scope, fiscal year), bumped with an
atomic UPDATE ... RETURNING so two concurrent completions can never read the
same value. A number is never reused, even when its receipt is canceled.
"""
from datetime import datetime

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from app.errors import IllegalTransition, NotFound
from app.extensions import db
from app.models import (Donation, DonationReceipt, DonationStatus, ReceiptKind,
                        ReceiptSequence, ReceiptStatus)
from app.utils import utcnow

SINGLE_SCOPE = 'single'


def annual_scope(user_id):
    return f'annual:{user_id}'


class ReceiptAllocator:
    """Reserves receipt numbers, renders the artifact and records the receipt"""

    def __init__(self, renderer, storage):
        self.renderer = renderer
        self.storage = storage

    def next_sequence(self, scope, fiscal_year):
        """Reserve the next value of the (scope, fiscal_year) counter"""
        bump = (
            update(ReceiptSequence)
            .where(ReceiptSequence.scope == scope, ReceiptSequence.fiscal_year == fiscal_year)
            .values(last_value=ReceiptSequence.last_value + 1)
            .returning(ReceiptSequence.last_value)
            .execution_options(synchronize_session=False)
        )
        for _ in range(2):
            value = db.session.execute(bump).scalar_one_or_none()
            if value is not None:
                return value
            # First number of the year for this scope: create the row, another
            # writer may be doing the same
            try:
                with db.session.begin_nested():
                    db.session.add(ReceiptSequence(scope=scope, fiscal_year=fiscal_year, last_value=0))
            except IntegrityError:
                current_app.logger.info(f'Receipt sequence {scope}/{fiscal_year} created concurrently, retrying')
        raise RuntimeError(f'Could not reserve a receipt number for {scope}/{fiscal_year}')

    def format_number(self, fiscal_year, sequence):
        prefix = current_app.config.get('RECEIPT_PREFIX', 'RF')
        return f'{prefix}-{fiscal_year}-{sequence:05d}'

    def format_annual_number(self, user_id, fiscal_year, sequence):
        prefix = current_app.config.get('ANNUAL_RECEIPT_PREFIX', 'RFA')
        return f'{prefix}-{fiscal_year}-{user_id:06d}-{sequence:02d}'

    def get_for_donation(self, donation_id):
        """Active (non canceled) receipt of a donation, or None"""
        return (DonationReceipt.query
                .filter_by(donation_id=donation_id, kind=ReceiptKind.SINGLE.value,
                           status=ReceiptStatus.GENERATED.value)
                .order_by(DonationReceipt.created_at.desc())
                .first())

    def get_by_number(self, receipt_number):
        return DonationReceipt.query.filter_by(receipt_number=receipt_number).first()

    def allocate(self, donation):
        """
        Issue the fiscal receipt of a completed donation.

        Returns the existing active receipt when there is one, None when the donor
        did not ask for a receipt.

        Raises:
            IllegalTransition: the donation is not COMPLETED
        """
        if donation.status != DonationStatus.COMPLETED.value:
            raise IllegalTransition(donation_id=donation.id, status=donation.status)
        if not donation.receipt_requested:
            current_app.logger.debug(f'No receipt requested for donation {donation.id}')
            return None

        existing = self.get_for_donation(donation.id)
        if existing is not None:
            return existing

        fiscal_year = (donation.paid_at or donation.created_at or utcnow()).year
        receipt_number = self.format_number(fiscal_year, self.next_sequence(SINGLE_SCOPE, fiscal_year))
        issued_at = utcnow()

        content = self.renderer.render_single(donation, receipt_number, issued_at)
        key = self.storage.save(f'{fiscal_year}/{receipt_number}.{self.renderer.extension}', content)

        receipt = DonationReceipt(
            kind=ReceiptKind.SINGLE.value,
            receipt_number=receipt_number,
            fiscal_year=fiscal_year,
            amount=donation.amount,
            donations_count=1,
            artifact_ref=key,
            status=ReceiptStatus.GENERATED.value,
            created_at=issued_at,
            donation_id=donation.id,
            user_id=donation.user_id,
        )
        db.session.add(receipt)
        donation.receipt_number = receipt_number
        db.session.flush()

        current_app.logger.info(f'Receipt {receipt_number} generated for donation {donation.id}')
        return receipt

    def cancel(self, donation_id):
        """Cancel the active receipt of a donation. Its number stays burnt."""
        receipt = self.get_for_donation(donation_id)
        if receipt is None:
            return None
        self._cancel_receipt(receipt)
        current_app.logger.info(f'Receipt {receipt.receipt_number} canceled (donation {donation_id})')
        return receipt

    def _cancel_receipt(self, receipt):
        result = db.session.execute(
            update(DonationReceipt)
            .where(DonationReceipt.id == receipt.id,
                   DonationReceipt.status == ReceiptStatus.GENERATED.value)
            .values(status=ReceiptStatus.CANCELED.value, canceled_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        db.session.refresh(receipt)
        return result.rowcount == 1

    def allocate_annual(self, user, fiscal_year):
        """
        Issue the yearly summary receipt of a donor.

        Covers every COMPLETED donation of the donor paid during fiscal_year. A
        previous annual receipt for the same donor and year is canceled and
        replaced by a new number.

        Raises:
            NotFound: the donor has no completed donation that year
        """
        start = datetime(fiscal_year, 1, 1)
        end = datetime(fiscal_year + 1, 1, 1)
        donations = (Donation.query
                     .filter(Donation.user_id == user.id,
                             Donation.status == DonationStatus.COMPLETED.value,
                             Donation.paid_at >= start,
                             Donation.paid_at < end)
                     .order_by(Donation.paid_at.asc())
                     .all())
        if not donations:
            raise NotFound(user_id=user.id, fiscal_year=fiscal_year)

        total = sum(donation.amount for donation in donations)

        previous = (DonationReceipt.query
                    .filter_by(user_id=user.id, kind=ReceiptKind.ANNUAL.value,
                               fiscal_year=fiscal_year, status=ReceiptStatus.GENERATED.value)
                    .all())
        for receipt in previous:
            self._cancel_receipt(receipt)
            current_app.logger.info(f'Annual receipt {receipt.receipt_number} superseded')

        sequence = self.next_sequence(annual_scope(user.id), fiscal_year)
        receipt_number = self.format_annual_number(user.id, fiscal_year, sequence)
        issued_at = utcnow()

        content = self.renderer.render_annual(user, fiscal_year, donations, total, receipt_number, issued_at)
        key = self.storage.save(f'annual/{fiscal_year}/{receipt_number}.{self.renderer.extension}', content)

        receipt = DonationReceipt(
            kind=ReceiptKind.ANNUAL.value,
            receipt_number=receipt_number,
            fiscal_year=fiscal_year,
            amount=total,
            donations_count=len(donations),
            artifact_ref=key,
            status=ReceiptStatus.GENERATED.value,
            created_at=issued_at,
            user_id=user.id,
        )
        db.session.add(receipt)
        db.session.flush()

        current_app.logger.info(f'Annual receipt {receipt_number} generated for user {user.id}: '
                                f'{len(donations)} donations, {total / 100}€')
        return receipt

    def read_artifact(self, receipt):
        """Stored artifact bytes of a receipt"""
        if not receipt.artifact_ref or not self.storage.exists(receipt.artifact_ref):
            raise NotFound(receipt_number=receipt.receipt_number)
        return self.storage.open(receipt.artifact_ref)
