"""
Stripe payment gateway
"""
import json
import stripe
from flask import current_app

from app.errors import GatewayError, InvalidSignature
from app.gateway.base import PaymentGateway, PaymentIntent, Subscription

# Stripe only bills by month or year; quarterly is three months
FREQUENCY_TO_INTERVAL = {
    'monthly': ('month', 1),
    'quarterly': ('month', 3),
    'yearly': ('year', 1),
}


def _field(obj, name):
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


class StripeGateway(PaymentGateway):
    """Gateway backed by the Stripe API"""

    def __init__(self, secret_key, webhook_secret, max_network_retries=3):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        stripe.max_network_retries = max_network_retries

    @classmethod
    def from_config(cls, config):
        return cls(
            secret_key=config.get('STRIPE_SECRET_KEY'),
            webhook_secret=config.get('STRIPE_WEBHOOK_SECRET'),
            max_network_retries=config.get('STRIPE_MAX_NETWORK_RETRIES', 3),
        )

    def _ensure_configured(self):
        if not self.secret_key:
            current_app.logger.error('Stripe call attempted but STRIPE_SECRET_KEY is not configured')
            raise GatewayError('Stripe is not configured')

    def _call(self, description, func, *args, **params):
        self._ensure_configured()
        try:
            return func(*args, api_key=self.secret_key, **params)
        except stripe.StripeError as e:
            current_app.logger.error(f'Stripe error during {description}: {str(e)}', exc_info=True)
            raise GatewayError(gateway_message=str(e)) from e

    def create_payment_intent(self, amount, currency, metadata, receipt_email=None):
        params = {
            'amount': amount,
            'currency': currency,
            'metadata': metadata,
            'automatic_payment_methods': {'enabled': True},
        }
        if receipt_email:
            params['receipt_email'] = receipt_email
        intent = self._call('payment intent creation', stripe.PaymentIntent.create, **params)
        current_app.logger.info(f'PaymentIntent created: {intent.id} for {amount/100}€')
        return PaymentIntent(id=intent.id, client_secret=intent.client_secret)

    def create_customer(self, email, name, metadata=None):
        customer = self._call('customer creation', stripe.Customer.create,
                              email=email, name=name, metadata=metadata or {})
        current_app.logger.info(f'Stripe customer created: {customer.id}')
        return customer.id

    def create_subscription(self, customer_id, amount, currency, frequency, metadata=None):
        interval, interval_count = FREQUENCY_TO_INTERVAL[frequency]
        price = self._call('price creation', stripe.Price.create,
                           unit_amount=amount,
                           currency=currency,
                           recurring={'interval': interval, 'interval_count': interval_count},
                           product_data={'name': f'Don recurrent {amount/100:.2f} EUR'})
        subscription = self._call('subscription creation', stripe.Subscription.create,
                                  customer=customer_id,
                                  items=[{'price': price.id}],
                                  metadata=metadata or {},
                                  payment_behavior='default_incomplete',
                                  expand=['latest_invoice.payment_intent', 'latest_invoice.confirmation_secret'])
        current_app.logger.info(f'Subscription created: {subscription.id}')

        # Client confirmation secret moved from the invoice payment intent to confirmation_secret
        invoice = _field(subscription, 'latest_invoice')
        client_secret = (_field(_field(invoice, 'confirmation_secret'), 'client_secret')
                         or _field(_field(invoice, 'payment_intent'), 'client_secret'))
        return Subscription(id=subscription.id, status=subscription.status, client_secret=client_secret)

    def pause_subscription(self, subscription_id):
        self._call('subscription pause', stripe.Subscription.modify, subscription_id, cancel_at_period_end=True)
        current_app.logger.info(f'Subscription paused (cancel at period end): {subscription_id}')

    def resume_subscription(self, subscription_id):
        self._call('subscription resume', stripe.Subscription.modify, subscription_id, cancel_at_period_end=False)
        current_app.logger.info(f'Subscription resumed: {subscription_id}')

    def cancel_subscription(self, subscription_id):
        self._call('subscription cancel', stripe.Subscription.cancel, subscription_id)
        current_app.logger.info(f'Subscription canceled: {subscription_id}')

    def verify_event(self, payload, signature):
        if not self.webhook_secret:
            current_app.logger.warning('Stripe webhook called but webhook secret not configured')
            raise InvalidSignature('Webhook secret not configured')
        # The signature covers the raw body text
        if isinstance(payload, bytes):
            try:
                payload = payload.decode('utf-8')
            except UnicodeDecodeError as e:
                current_app.logger.error(f'Stripe webhook body is not UTF-8: {str(e)}')
                raise InvalidSignature('Invalid payload') from e
        try:
            stripe.WebhookSignature.verify_header(payload, signature or '', self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            current_app.logger.error(f'Invalid Stripe webhook signature: {str(e)}')
            raise InvalidSignature() from e
        try:
            return json.loads(payload)
        except ValueError as e:
            current_app.logger.error(f'Invalid Stripe webhook payload: {str(e)}')
            raise InvalidSignature('Invalid payload') from e
