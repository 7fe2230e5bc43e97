"""
Webhook reconciliation.

The gateway delivers at least once and in any order. Each verified event is
recorded in webhook_event inside the same transaction as its effects: a
duplicate delivery trips the unique event id and is acknowledged without being
applied again, and a failing handler rolls back the record too so the next
delivery is processed from scratch.
"""
from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import IntegrityError

from app.errors import InvalidSignature, WebhookProcessingError
from app.extensions import db
from app.gateway.events import (ChargeRefunded, GatewayEvent, InvoicePaid, InvoicePaymentFailed,
                                PaymentFailed, PaymentSucceeded, SubscriptionChanged)
from app.models import Donation, WebhookEvent


@dataclass(frozen=True)
class WebhookResult:
    event: GatewayEvent
    duplicate: bool = False


class WebhookProcessor:
    """Verifies, deduplicates and applies gateway notifications"""

    def __init__(self, gateway, ledger, recurrences):
        self.gateway = gateway
        self.ledger = ledger
        self.recurrences = recurrences
        self._handlers = {
            PaymentSucceeded: self._on_payment_succeeded,
            PaymentFailed: self._on_payment_failed,
            ChargeRefunded: self._on_charge_refunded,
            SubscriptionChanged: self._on_subscription_changed,
            InvoicePaid: self._on_invoice_paid,
            InvoicePaymentFailed: self._on_invoice_payment_failed,
        }

    def handle(self, payload, signature):
        """
        Apply one gateway notification.

        Raises:
            InvalidSignature: the payload is not authentic, nothing was recorded
            WebhookProcessingError: applying the event failed and was rolled back
        """
        event = self.gateway.parse_event(payload, signature)
        if not event.event_id:
            raise InvalidSignature('Missing event id')
        current_app.logger.info(f'Gateway event received: {event.event_type} ({event.event_id})')

        db.session.add(WebhookEvent(gateway_event_id=event.event_id, event_type=event.event_type))
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            current_app.logger.info(f'Gateway event {event.event_id} already processed, skipping')
            return WebhookResult(event=event, duplicate=True)

        try:
            handler = self._handlers.get(type(event))
            if handler is None:
                current_app.logger.debug(f'Unhandled gateway event type: {event.event_type}')
            else:
                handler(event)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            current_app.logger.error(f'Error processing gateway event {event.event_type} '
                                     f'({event.event_id}): {str(e)}', exc_info=True)
            raise WebhookProcessingError(event_id=event.event_id, detail=str(e)) from e

        return WebhookResult(event=event)

    # ---- Handlers ----

    def _donation_for_intent(self, intent_id, donation_id):
        donation = self.ledger.find_by_intent(intent_id)
        if donation is None and donation_id is not None:
            donation = db.session.get(Donation, donation_id)
            if donation is not None and donation.gateway_intent_id not in (None, intent_id):
                current_app.logger.warning(f'Donation {donation_id} is bound to intent '
                                           f'{donation.gateway_intent_id}, not {intent_id}')
                return None
        return donation

    def _on_payment_succeeded(self, event):
        donation = self._donation_for_intent(event.intent_id, event.donation_id)
        if donation is None:
            # Subscription invoices also produce intents; those are handled on invoice events
            current_app.logger.info(f'No donation for payment intent {event.intent_id}, ignored')
            return
        self.ledger.complete(donation.id, gateway_charge_id=event.charge_id, paid_at=event.occurred_at)

    def _on_payment_failed(self, event):
        donation = self._donation_for_intent(event.intent_id, event.donation_id)
        if donation is None:
            current_app.logger.info(f'No donation for failed payment intent {event.intent_id}, ignored')
            return
        current_app.logger.warning(f'Payment failed for donation {donation.id}: {event.failure_message}')
        self.ledger.fail(donation.id)

    def _on_charge_refunded(self, event):
        if not event.fully_refunded:
            current_app.logger.info(f'Partial refund on charge {event.charge_id} ignored')
            return
        donation = (self.ledger.find_by_charge(event.charge_id)
                    or self.ledger.find_by_intent(event.intent_id)
                    or self.ledger.find_by_charge(event.intent_id))
        if donation is None:
            current_app.logger.warning(f'Refund for unknown charge {event.charge_id} ignored')
            return
        self.ledger.refund(donation.id)

    def _on_subscription_changed(self, event):
        self.recurrences.apply_gateway_status(
            event.subscription_id,
            event.status,
            deleted=event.deleted,
            pause_requested=event.pause_requested,
        )

    def _on_invoice_paid(self, event):
        if not event.subscription_id:
            current_app.logger.info(f'Invoice {event.invoice_id} is not tied to a subscription, ignored')
            return
        self.recurrences.on_billing_cycle_succeeded(
            event.subscription_id,
            event.invoice_id,
            charge_id=event.charge_id,
            paid_at=event.occurred_at,
            amount_paid=event.amount_paid,
        )

    def _on_invoice_payment_failed(self, event):
        if not event.subscription_id:
            return
        self.recurrences.on_billing_cycle_failed(event.subscription_id, invoice_id=event.invoice_id)
