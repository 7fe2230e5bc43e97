"""
Inbound gateway events.

Raw notification payloads are turned into a closed set of frozen dataclasses by
classify_event(); anything the processor does not know about becomes an
UnknownEvent, which is acknowledged and ignored.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


@dataclass(frozen=True)
class GatewayEvent:
    event_id: str
    event_type: str
    occurred_at: Optional[datetime]


@dataclass(frozen=True)
class PaymentSucceeded(GatewayEvent):
    intent_id: str
    charge_id: Optional[str] = None
    donation_id: Optional[int] = None


@dataclass(frozen=True)
class PaymentFailed(GatewayEvent):
    intent_id: str
    donation_id: Optional[int] = None
    failure_message: Optional[str] = None


@dataclass(frozen=True)
class ChargeRefunded(GatewayEvent):
    charge_id: str
    intent_id: Optional[str] = None
    fully_refunded: bool = True


@dataclass(frozen=True)
class SubscriptionChanged(GatewayEvent):
    subscription_id: str
    status: str
    deleted: bool = False
    pause_requested: bool = False


@dataclass(frozen=True)
class InvoicePaid(GatewayEvent):
    invoice_id: str
    subscription_id: Optional[str]
    charge_id: Optional[str] = None
    amount_paid: Optional[int] = None


@dataclass(frozen=True)
class InvoicePaymentFailed(GatewayEvent):
    invoice_id: str
    subscription_id: Optional[str]


@dataclass(frozen=True)
class UnknownEvent(GatewayEvent):
    pass


def _timestamp(value):
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)


def _ref(value):
    """Expanded objects carry their id, plain references are strings"""
    if isinstance(value, dict):
        return value.get('id')
    return value or None


def _donation_id(metadata):
    raw = str((metadata or {}).get('donation_id') or '').strip()
    return int(raw) if raw.isdigit() else None


def _invoice_subscription(invoice):
    # Newer API versions moved the subscription under parent.subscription_details
    subscription = _ref(invoice.get('subscription'))
    if subscription:
        return subscription
    details = (invoice.get('parent') or {}).get('subscription_details') or {}
    return _ref(details.get('subscription'))


def _invoice_charge(invoice):
    charge = _ref(invoice.get('charge'))
    if charge:
        return charge
    return _ref(invoice.get('payment_intent'))


def classify_event(raw):
    """Map a decoded gateway notification onto one of the known event kinds"""
    event_id = raw.get('id')
    event_type = raw.get('type') or 'unknown'
    obj = (raw.get('data') or {}).get('object') or {}
    base = {
        'event_id': event_id,
        'event_type': event_type,
        'occurred_at': _timestamp(raw.get('created')),
    }

    if event_type == 'payment_intent.succeeded':
        return PaymentSucceeded(
            intent_id=obj.get('id'),
            charge_id=_ref(obj.get('latest_charge')),
            donation_id=_donation_id(obj.get('metadata')),
            **base,
        )

    if event_type == 'payment_intent.payment_failed':
        error = obj.get('last_payment_error') or {}
        return PaymentFailed(
            intent_id=obj.get('id'),
            donation_id=_donation_id(obj.get('metadata')),
            failure_message=error.get('message'),
            **base,
        )

    if event_type == 'charge.refunded':
        amount = obj.get('amount')
        refunded = obj.get('amount_refunded')
        fully = bool(obj.get('refunded')) or (amount is not None and refunded == amount)
        return ChargeRefunded(
            charge_id=obj.get('id'),
            intent_id=_ref(obj.get('payment_intent')),
            fully_refunded=fully,
            **base,
        )

    if event_type in ('customer.subscription.created', 'customer.subscription.updated', 'customer.subscription.deleted'):
        return SubscriptionChanged(
            subscription_id=obj.get('id'),
            status=obj.get('status') or '',
            deleted=event_type == 'customer.subscription.deleted',
            pause_requested=bool(obj.get('cancel_at_period_end')) or bool(obj.get('pause_collection')),
            **base,
        )

    if event_type in ('invoice.payment_succeeded', 'invoice.paid'):
        return InvoicePaid(
            invoice_id=obj.get('id'),
            subscription_id=_invoice_subscription(obj),
            charge_id=_invoice_charge(obj),
            amount_paid=obj.get('amount_paid'),
            **base,
        )

    if event_type == 'invoice.payment_failed':
        return InvoicePaymentFailed(
            invoice_id=obj.get('id'),
            subscription_id=_invoice_subscription(obj),
            **base,
        )

    return UnknownEvent(**base)
