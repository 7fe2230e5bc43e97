"""
Domain errors for the donation core.

Each error carries the HTTP status the API answers with and a translatable
default message; the JSON mapping lives in app/core/error_handlers.py.
"""
from flask_babel import lazy_gettext as _l


class DonationCoreError(Exception):
    """Base class for errors raised by the donation services"""
    status_code = 400
    code = 'error'
    retryable = False
    default_message = _l('Erreur lors du traitement du don')

    def __init__(self, message=None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(str(self.message))


class InvalidProject(DonationCoreError):
    code = 'invalid_project'
    default_message = _l('Projet invalide ou inactif')


class InvalidAmount(DonationCoreError):
    code = 'invalid_amount'
    default_message = _l('Montant de don invalide')


class InvalidSignature(DonationCoreError):
    code = 'invalid_signature'
    default_message = _l('Signature du webhook invalide')


class NotFound(DonationCoreError):
    status_code = 404
    code = 'not_found'
    default_message = _l('Ressource introuvable')


class IllegalTransition(DonationCoreError):
    status_code = 409
    code = 'illegal_transition'
    default_message = _l('Changement de statut non autorise')


class Forbidden(DonationCoreError):
    status_code = 403
    code = 'forbidden'
    default_message = _l('Acces refuse')


class GatewayError(DonationCoreError):
    """The payment gateway call failed; nothing was persisted and the caller may retry"""
    status_code = 503
    code = 'gateway_error'
    retryable = True
    default_message = _l('Le service de paiement est indisponible, veuillez reessayer')


class WebhookProcessingError(DonationCoreError):
    """A verified gateway event could not be applied; the gateway should deliver it again"""
    status_code = 500
    code = 'webhook_processing_failed'
    retryable = True
    default_message = _l("Erreur lors du traitement de l'evenement de paiement")


class InvalidRequest(DonationCoreError):
    code = 'invalid_request'
    default_message = _l('Requete invalide')
