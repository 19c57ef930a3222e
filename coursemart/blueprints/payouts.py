"""Payout setup blueprint - bank lookup and account registration."""
from flask import Blueprint, request, g, jsonify, current_app
from coursemart.database import get_session
from coursemart.middleware import require_login
from coursemart.services import payout_service

payouts_bp = Blueprint('payouts', __name__, url_prefix='/payouts')


@payouts_bp.route('/banks', methods=['GET'])
@require_login
def banks():
    return jsonify({'banks': payout_service.list_banks()}), 200


@payouts_bp.route('/bank-account/verify', methods=['POST'])
@require_login
def verify_account():
    """Body: {"bank_code": "...", "account_number": "..."}"""
    data = request.get_json(silent=True) or {}
    account = payout_service.verify_bank_account(
        None, data.get('bank_code'), str(data.get('account_number') or '')
    )
    return jsonify(account), 200


@payouts_bp.route('/bank-account', methods=['POST'])
@require_login
def save_account():
    """Body: {"bank_code": "...", "account_number": "...", "bank_name": "..."}"""
    data = request.get_json(silent=True) or {}
    user = payout_service.save_bank_details(
        get_session(),
        g.identity,
        data.get('bank_code'),
        str(data.get('account_number') or ''),
        bank_name=data.get('bank_name')
    )
    current_app.logger.info(f"[PAYOUT] Payout account updated for user {user.id}")
    return jsonify({
        'bank_name': user.bank_name,
        'account_number': user.account_number,
        'recipient_code': user.recipient_code,
        'subaccount_code': user.subaccount_code,
    }), 200
