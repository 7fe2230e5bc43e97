"""
Donation core services, wired per application
"""
from dataclasses import dataclass

from flask import current_app

from app.services.audit import AuditTrail
from app.services.funds import FundAggregator
from app.services.ledger import DonationLedger, DonorRef
from app.services.receipts import ReceiptAllocator
from app.services.recurrences import RecurrenceManager
from app.services.webhooks import WebhookProcessor, WebhookResult

# Key for storing the wired services in Flask app extensions
_CORE_EXTENSION_KEY = 'donation_core'


@dataclass(frozen=True)
class DonationCore:
    audit: AuditTrail
    funds: FundAggregator
    receipts: ReceiptAllocator
    ledger: DonationLedger
    recurrences: RecurrenceManager
    webhooks: WebhookProcessor


def build_donation_core(gateway, renderer, storage):
    """Wire the services leaf-first around the given collaborators"""
    audit = AuditTrail()
    funds = FundAggregator()
    receipts = ReceiptAllocator(renderer, storage)
    ledger = DonationLedger(funds, receipts, gateway, audit)
    recurrences = RecurrenceManager(ledger, gateway, funds)
    webhooks = WebhookProcessor(gateway, ledger, recurrences)
    return DonationCore(audit=audit, funds=funds, receipts=receipts, ledger=ledger,
                        recurrences=recurrences, webhooks=webhooks)


def get_donation_core():
    """Return the donation services of the current app (singleton per app)"""
    if _CORE_EXTENSION_KEY not in current_app.extensions:
        from app.gateway import get_gateway
        from app.providers import HtmlReceiptRenderer
        from app.storage import get_storage

        current_app.extensions[_CORE_EXTENSION_KEY] = build_donation_core(
            gateway=get_gateway(),
            renderer=HtmlReceiptRenderer(),
            storage=get_storage(),
        )
    return current_app.extensions[_CORE_EXTENSION_KEY]


__all__ = ['DonationCore', 'DonorRef', 'WebhookResult', 'build_donation_core', 'get_donation_core']
