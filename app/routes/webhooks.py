from flask import Blueprint, request, jsonify, current_app
from app.errors import InvalidSignature, WebhookProcessingError
from app.extensions import csrf
from app.services import get_donation_core

bp = Blueprint('webhooks', __name__, url_prefix='/api/webhooks')


@bp.route('/stripe', methods=['POST'])
@csrf.exempt  # Stripe webhooks don't include CSRF tokens
def stripe_webhook():
    """Handle Stripe webhook events"""
    payload = request.get_data()
    sig_header = request.headers.get('Stripe-Signature')

    try:
        result = get_donation_core().webhooks.handle(payload, sig_header)
    except InvalidSignature as e:
        return jsonify({'error': e.code, 'message': str(e.message)}), 400
    except WebhookProcessingError as e:
        # Non-2xx makes Stripe deliver the event again later
        return jsonify({'error': e.code, 'message': str(e.message)}), 500

    if result.duplicate:
        return jsonify({'status': 'duplicate'}), 200
    current_app.logger.debug(f'Stripe webhook {result.event.event_type} processed')
    return jsonify({'status': 'success'}), 200
