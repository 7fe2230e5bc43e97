from flask import Blueprint, request, jsonify, current_app, make_response
from flask_security import auth_required, current_user
from app.errors import Forbidden, NotFound
from app.extensions import db
from app.models import ReceiptStatus, User
from app.services import get_donation_core
from app.utils import utcnow

bp = Blueprint('receipts', __name__, url_prefix='/api')


def _can_access(user_id):
    return user_id == current_user.id or current_user.has_role('admin')


@bp.route('/donations/<int:donation_id>/receipt')
@auth_required()
def donation_receipt(donation_id):
    core = get_donation_core()
    donation = core.ledger.get(donation_id)
    if not _can_access(donation.user_id):
        raise Forbidden(donation_id=donation_id)
    receipt = core.receipts.get_for_donation(donation_id)
    if receipt is None:
        raise NotFound(donation_id=donation_id)
    return jsonify({'data': receipt.to_dict()})


@bp.route('/receipts/<string:receipt_number>/download')
@auth_required()
def download_receipt(receipt_number):
    receipts = get_donation_core().receipts
    receipt = receipts.get_by_number(receipt_number)
    if receipt is None or receipt.status != ReceiptStatus.GENERATED.value:
        raise NotFound(receipt_number=receipt_number)
    if not _can_access(receipt.user_id):
        raise Forbidden(receipt_number=receipt_number)

    response = make_response(receipts.read_artifact(receipt))
    response.headers['Content-Type'] = receipts.renderer.content_type
    response.headers['Content-Disposition'] = (
        f'attachment; filename={receipt.receipt_number}.{receipts.renderer.extension}'
    )
    return response


@bp.route('/receipts/annual/<int:year>', methods=['POST'])
@auth_required()
def annual_receipt(year):
    """Issue the yearly receipt of the signed-in donor (administrators may pass ?user_id=)"""
    if year < 2000 or year > utcnow().year:
        raise NotFound(year=year)
    user = current_user
    user_id = request.args.get('user_id', type=int)
    if user_id is not None and user_id != current_user.id:
        if not current_user.has_role('admin'):
            raise Forbidden(user_id=user_id)
        user = db.session.get(User, user_id)
        if user is None:
            raise NotFound(user_id=user_id)

    receipt = get_donation_core().receipts.allocate_annual(user, year)
    db.session.commit()
    current_app.logger.info(f'Annual receipt {receipt.receipt_number} issued for user {user.id}')
    return jsonify({'data': receipt.to_dict()}), 201
