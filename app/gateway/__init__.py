"""
Payment gateway adapters
"""
from flask import current_app

from app.gateway.base import PaymentGateway, PaymentIntent, Subscription
from app.gateway.stripe_gateway import StripeGateway

# Key for storing the gateway in Flask app extensions
_GATEWAY_EXTENSION_KEY = 'payment_gateway'


def get_gateway():
    """Return the configured payment gateway (singleton per app)"""
    if _GATEWAY_EXTENSION_KEY not in current_app.extensions:
        current_app.extensions[_GATEWAY_EXTENSION_KEY] = StripeGateway.from_config(current_app.config)
        current_app.logger.debug('Stripe gateway cached in app extensions')
    return current_app.extensions[_GATEWAY_EXTENSION_KEY]


__all__ = ['PaymentGateway', 'PaymentIntent', 'Subscription', 'StripeGateway', 'get_gateway']
