"""Checkout blueprint - course purchases and promo code checks."""
from flask import Blueprint, request, g, jsonify, current_app
from coursemart.database import get_session
from coursemart.exceptions import BusinessLogicError
from coursemart.middleware import require_login
from coursemart.services.checkout_service import begin_checkout
from coursemart.services.promo_service import validate_promo_code
from coursemart.blueprints.metrics import track_checkout

checkout_bp = Blueprint('checkout', __name__, url_prefix='/checkout')


def _course_ids_from(data):
    course_ids = data.get('course_ids')
    if course_ids is None and data.get('course_id') is not None:
        course_ids = [data['course_id']]
    if not isinstance(course_ids, list) or not course_ids:
        raise BusinessLogicError('course_ids must be a non-empty list')
    try:
        return [int(cid) for cid in course_ids]
    except (TypeError, ValueError):
        raise BusinessLogicError('course_ids must be integers')


@checkout_bp.route('', methods=['POST'])
@require_login
def start_checkout():
    """
    Start a checkout for one or more courses.

    Body: {"course_ids": [...], "promo_code": "..."}
    Returns: {"authorization_url": ..., "reference": ...}
    """
    data = request.get_json(silent=True) or {}

    with track_checkout('course'):
        result = begin_checkout(
            get_session(),
            g.identity,
            _course_ids_from(data),
            promo_code=data.get('promo_code'),
            callback_url=data.get('callback_url')
        )

    current_app.logger.info(f"[CHECKOUT] User {g.identity.user_id} redirected to gateway ({result.reference})")
    return jsonify(result.to_dict()), 201


@checkout_bp.route('/promo/validate', methods=['POST'])
@require_login
def validate_promo():
    """
    Preview a promo code for the cart. Checkout re-validates on its own.

    Body: {"code": "...", "course_ids": [...]}
    """
    data = request.get_json(silent=True) or {}
    result = validate_promo_code(
        get_session(),
        data.get('code'),
        g.identity.user_id,
        _course_ids_from(data)
    )
    return jsonify(result.to_dict()), 200
