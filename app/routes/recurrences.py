from flask import Blueprint, request, jsonify, current_app
from flask_security import auth_required, current_user
from flask_security.decorators import roles_required
from flask_babel import gettext as _
from app.errors import InvalidAmount, InvalidRequest
from app.extensions import db
from app.models import Donation, RecurrenceFrequency, RecurrenceStatus
from app.services import DonorRef, get_donation_core
from app.utils import to_cents, optional_id, pagination_args, pagination_meta

bp = Blueprint('recurrences', __name__, url_prefix='/api/recurrences')


@bp.route('', methods=['POST'])
@auth_required()
def create_recurrence():
    """Start a recurring donation for the signed-in donor"""
    data = request.get_json(silent=True) or {}
    amount = to_cents(data.get('amount'))
    if amount is None:
        raise InvalidAmount()
    frequency = data.get('frequency', RecurrenceFrequency.MONTHLY.value)
    if frequency not in [f.value for f in RecurrenceFrequency]:
        raise InvalidRequest(_('Frequence invalide'), frequency=frequency)

    recurrence, client_secret = get_donation_core().recurrences.subscribe(
        DonorRef.for_user(current_user),
        amount,
        frequency,
        project_id=optional_id(data.get('project_id')),
    )
    db.session.commit()

    return jsonify({
        'data': recurrence.to_dict(),
        'client_secret': client_secret,
    }), 201


@bp.route('/me')
@auth_required()
def my_recurrences():
    recurrences = get_donation_core().recurrences.list_for_user(current_user.id)
    return jsonify({'data': [recurrence.to_dict() for recurrence in recurrences]})


@bp.route('/stats')
@auth_required()
@roles_required('admin')
def recurrence_stats():
    return jsonify({'data': get_donation_core().recurrences.stats()})


@bp.route('')
@auth_required()
@roles_required('admin')
def list_recurrences():
    page, limit = pagination_args()
    status = request.args.get('status')
    if status and status not in RecurrenceStatus.all():
        status = None
    pagination = get_donation_core().recurrences.list_all(page=page, limit=limit, status=status)
    return jsonify({
        'data': [recurrence.to_dict() for recurrence in pagination.items],
        'meta': pagination_meta(pagination),
    })


@bp.route('/<int:recurrence_id>')
@auth_required()
def get_recurrence(recurrence_id):
    recurrence = get_donation_core().recurrences.get_for(recurrence_id, current_user)
    data = recurrence.to_dict()
    data['donations'] = [donation.to_dict() for donation in recurrence.donations.order_by(Donation.created_at)]
    return jsonify({'data': data})


@bp.route('/<int:recurrence_id>/pause', methods=['PATCH'])
@auth_required()
def pause_recurrence(recurrence_id):
    recurrence = get_donation_core().recurrences.pause(recurrence_id, current_user)
    db.session.commit()
    current_app.logger.info(f'Recurrence {recurrence_id} paused by {current_user.email}')
    return jsonify({'data': recurrence.to_dict()})


@bp.route('/<int:recurrence_id>/resume', methods=['PATCH'])
@auth_required()
def resume_recurrence(recurrence_id):
    recurrence = get_donation_core().recurrences.resume(recurrence_id, current_user)
    db.session.commit()
    current_app.logger.info(f'Recurrence {recurrence_id} resumed by {current_user.email}')
    return jsonify({'data': recurrence.to_dict()})


@bp.route('/<int:recurrence_id>/cancel', methods=['PATCH'])
@auth_required()
def cancel_recurrence(recurrence_id):
    recurrence = get_donation_core().recurrences.cancel(recurrence_id, current_user)
    db.session.commit()
    current_app.logger.info(f'Recurrence {recurrence_id} canceled by {current_user.email}')
    return jsonify({'data': recurrence.to_dict()})
