from flask import Blueprint, request, jsonify, current_app
from flask_security import auth_required, current_user
from flask_security.decorators import roles_required
from flask_babel import gettext as _
from app.errors import Forbidden, InvalidAmount, InvalidRequest
from app.extensions import db
from app.models import DonationStatus
from app.services import DonorRef, get_donation_core
from app.utils import to_cents, optional_id, pagination_args, pagination_meta

bp = Blueprint('donations', __name__, url_prefix='/api/donations')


def _donor_from_request(data):
    """Signed-in donors give as themselves, others leave an inline identity"""
    if current_user.is_authenticated:
        return DonorRef.for_user(current_user)
    email = (data.get('email') or '').strip()
    if not email:
        raise InvalidRequest(_('Une adresse email est requise'))
    return DonorRef(
        email=email,
        first_name=data.get('first_name'),
        last_name=data.get('last_name'),
        address=data.get('address'),
        postal_code=data.get('postal_code'),
        city=data.get('city'),
    )


@bp.route('/intent', methods=['POST'])
def create_intent():
    """Open a one-time donation and return the client secret of its payment intent"""
    data = request.get_json(silent=True) or {}
    amount = to_cents(data.get('amount'))
    if amount is None:
        raise InvalidAmount()
    donor = _donor_from_request(data)

    ledger = get_donation_core().ledger
    donation, client_secret = ledger.start_payment(
        donor,
        amount,
        project_id=optional_id(data.get('project_id')),
        receipt_requested=bool(data.get('receipt_requested', True)),
        is_anonymous=bool(data.get('is_anonymous', False)),
    )
    db.session.commit()
    current_app.logger.info(f'Payment intent {donation.gateway_intent_id} opened for donation {donation.id}')

    return jsonify({
        'donation_id': donation.id,
        'client_secret': client_secret,
        'amount': donation.amount_euros,
        'currency': donation.currency,
    }), 201


@bp.route('/me')
@auth_required()
def my_donations():
    page, limit = pagination_args()
    pagination = get_donation_core().ledger.list_for_user(current_user.id, page=page, limit=limit)
    return jsonify({
        'data': [donation.to_dict() for donation in pagination.items],
        'meta': pagination_meta(pagination),
    })


@bp.route('/stats')
@auth_required()
@roles_required('admin')
def donation_stats():
    return jsonify({'data': get_donation_core().ledger.stats()})


@bp.route('')
@auth_required()
@roles_required('admin')
def list_donations():
    page, limit = pagination_args()
    status = request.args.get('status')
    if status and status not in DonationStatus.all():
        status = None
    pagination = get_donation_core().ledger.list_all(page=page, limit=limit, status=status)
    return jsonify({
        'data': [donation.to_dict() for donation in pagination.items],
        'meta': pagination_meta(pagination),
    })


@bp.route('/<int:donation_id>')
@auth_required()
def get_donation(donation_id):
    donation = get_donation_core().ledger.get(donation_id)
    if donation.user_id != current_user.id and not current_user.has_role('admin'):
        raise Forbidden(donation_id=donation_id)
    return jsonify({'data': donation.to_dict()})


@bp.route('/<int:donation_id>/validate', methods=['POST'])
@auth_required()
@roles_required('admin')
def validate_donation(donation_id):
    """Mark a pending (offline) donation as received; already completed donations are returned as is"""
    donation = get_donation_core().ledger.validate(donation_id, current_user)
    db.session.commit()

    current_app.logger.info(f'Donation {donation_id} validated by {current_user.email}')
    return jsonify({'data': donation.to_dict()})


@bp.route('/<int:donation_id>/reject', methods=['POST'])
@auth_required()
@roles_required('admin')
def reject_donation(donation_id):
    donation = get_donation_core().ledger.reject(donation_id, current_user)
    db.session.commit()

    current_app.logger.info(f'Donation {donation_id} rejected by {current_user.email}')
    return jsonify({'data': donation.to_dict()})
