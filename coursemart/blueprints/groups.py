"""Group purchase blueprint - group checkout, invite links and joins."""
from flask import Blueprint, request, g, jsonify, current_app
from coursemart.database import get_session
from coursemart.exceptions import CommerceError, BusinessLogicError
from coursemart.middleware import require_login, require_tutor
from coursemart.services.group_purchase_service import GroupPurchaseCoordinator
from coursemart.services.group_tier_service import create_group_tier, retire_group_tier, list_active_tiers
from coursemart.blueprints.metrics import group_joins_total, join_outcome, track_checkout

groups_bp = Blueprint('groups', __name__)


@groups_bp.route('/courses/<int:course_id>/group-checkout', methods=['POST'])
@require_login
def group_checkout(course_id):
    """
    Create a group for a tier and pay the group price.

    Body: {"tier_id": ...}
    """
    data = request.get_json(silent=True) or {}
    try:
        tier_id = int(data.get('tier_id'))
    except (TypeError, ValueError):
        raise BusinessLogicError('tier_id is required')

    coordinator = GroupPurchaseCoordinator(get_session())
    with track_checkout('group'):
        result = coordinator.begin_group_checkout(
            g.identity, course_id, tier_id, callback_url=data.get('callback_url')
        )

    return jsonify(result.to_dict()), 201


@groups_bp.route('/group/<invite_code>', methods=['GET'])
def group_details(invite_code):
    """Invite deep link lookup."""
    group = GroupPurchaseCoordinator(get_session()).get_group_by_invite(invite_code)
    return jsonify(group.to_dict()), 200


@groups_bp.route('/group/<invite_code>/join', methods=['POST'])
@require_login
def join_group(invite_code):
    coordinator = GroupPurchaseCoordinator(get_session())
    try:
        result = coordinator.join_group(g.identity, invite_code)
    except CommerceError:
        group_joins_total.labels(outcome='rejected').inc()
        raise

    outcome = join_outcome(result)
    group_joins_total.labels(outcome=outcome).inc()

    current_app.logger.info(f"[GROUP] Join {invite_code} by user {g.identity.user_id}: {outcome}")
    return jsonify(result.to_dict()), 200


@groups_bp.route('/courses/<int:course_id>/my-group', methods=['GET'])
@require_login
def my_group(course_id):
    group = GroupPurchaseCoordinator(get_session()).get_my_group(g.identity.user_id, course_id)
    return jsonify({'group': group.to_dict() if group else None}), 200


# =====================================================
# TIERS (tutor side)
# =====================================================

@groups_bp.route('/courses/<int:course_id>/group-tiers', methods=['GET'])
def course_tiers(course_id):
    tiers = list_active_tiers(get_session(), course_id)
    return jsonify({'tiers': [
        {
            'id': tier.id,
            'size': tier.size,
            'group_price': str(tier.group_price),
            'cashback_percent': str(tier.cashback_percent),
        }
        for tier in tiers
    ]}), 200


@groups_bp.route('/courses/<int:course_id>/group-tiers', methods=['POST'])
@require_login
@require_tutor
def add_tier(course_id):
    """Body: {"size": 5, "group_price": "10000", "cashback_percent": "0.1"}"""
    data = request.get_json(silent=True) or {}
    tier = create_group_tier(
        get_session(),
        tutor_id=g.identity.user_id,
        course_id=course_id,
        size=data.get('size'),
        group_price=data.get('group_price'),
        cashback_percent=data.get('cashback_percent', 0)
    )
    return jsonify({'id': tier.id, 'size': tier.size, 'group_price': str(tier.group_price)}), 201


@groups_bp.route('/group-tiers/<int:tier_id>', methods=['DELETE'])
@require_login
@require_tutor
def remove_tier(tier_id):
    deleted = retire_group_tier(get_session(), g.identity.user_id, tier_id)
    return jsonify({'deleted': deleted, 'deactivated': not deleted}), 200
