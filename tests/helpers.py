"""Helpers shared by the test modules."""
import hashlib
import hmac
import json
import time

from app.errors import GatewayError
from app.gateway.base import PaymentIntent, Subscription
from app.gateway.stripe_gateway import StripeGateway


def auth_headers(user):
    return {
        'Authentication-Token': user.get_auth_token(),
        'Accept': 'application/json',
    }


def collected(db, project):
    """Project total as stored in the database"""
    db.session.refresh(project)
    return project.collected_amount


# ---- Gateway notifications ----

def stripe_event(event_id, event_type, obj, created=None):
    return json.dumps({
        'id': event_id,
        'object': 'event',
        'type': event_type,
        'created': created or int(time.time()),
        'data': {'object': obj},
    })


def sign(payload, secret='whsec_test_secret', timestamp=None):
    """Stripe-Signature header for payload"""
    timestamp = timestamp or int(time.time())
    signed = f'{timestamp}.{payload}'.encode('utf-8')
    signature = hmac.new(secret.encode('utf-8'), signed, hashlib.sha256).hexdigest()
    return f't={timestamp},v1={signature}'


def post_event(client, payload, signature=None):
    return client.post(
        '/api/webhooks/stripe',
        data=payload,
        content_type='application/json',
        headers={'Stripe-Signature': signature if signature is not None else sign(payload)},
    )


# ---- Gateway ----

class FakeGateway(StripeGateway):
    """Stripe gateway whose API calls are recorded instead of sent; signature checks stay real."""

    def __init__(self, webhook_secret):
        super().__init__(secret_key='sk_test_dummy', webhook_secret=webhook_secret, max_network_retries=0)
        self.calls = []
        self.fail_on = set()
        self._counter = 0

    def _record(self, _name, /, **params):
        self.calls.append((_name, params))
        if _name in self.fail_on:
            raise GatewayError(gateway_message='simulated outage')

    def _next_id(self, prefix):
        self._counter += 1
        return f'{prefix}_test_{self._counter}'

    def call_names(self):
        return [name for name, _ in self.calls]

    def create_payment_intent(self, amount, currency, metadata, receipt_email=None):
        self._record('create_payment_intent', amount=amount, currency=currency,
                     metadata=metadata, receipt_email=receipt_email)
        intent_id = self._next_id('pi')
        return PaymentIntent(id=intent_id, client_secret=f'{intent_id}_secret')

    def create_customer(self, email, name, metadata=None):
        self._record('create_customer', email=email, name=name, metadata=metadata)
        return self._next_id('cus')

    def create_subscription(self, customer_id, amount, currency, frequency, metadata=None):
        self._record('create_subscription', customer_id=customer_id, amount=amount,
                     currency=currency, frequency=frequency, metadata=metadata)
        subscription_id = self._next_id('sub')
        return Subscription(id=subscription_id, status='incomplete', client_secret=f'{subscription_id}_secret')

    def pause_subscription(self, subscription_id):
        self._record('pause_subscription', subscription_id=subscription_id)

    def resume_subscription(self, subscription_id):
        self._record('resume_subscription', subscription_id=subscription_id)

    def cancel_subscription(self, subscription_id):
        self._record('cancel_subscription', subscription_id=subscription_id)
