"""
Notification API Routes
The bell menu: latest notifications for the caller and read markers.
"""
from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required

from meroclinic.extensions import db
from meroclinic.models import Notification
from meroclinic.utils.decorators import get_current_actor

notification_bp = Blueprint('notification', __name__, url_prefix='/api/notifications')


@notification_bp.route('', methods=['GET'])
@jwt_required()
def list_notifications():
    """Latest notifications for the caller plus the unread count (default 10)."""
    actor = get_current_actor()
    limit = request.args.get('limit', 10, type=int)
    if limit < 1 or limit > 100:
        limit = 10

    notifications = Notification.query.filter_by(user_id=actor.user_id).order_by(
        Notification.created_at.desc(),
        Notification.id.desc()
    ).limit(limit).all()
    unread = Notification.query.filter_by(user_id=actor.user_id, is_read=False).count()

    return jsonify({
        'success': True,
        'data': [n.to_dict() for n in notifications],
        'unread_count': unread
    }), 200


@notification_bp.route('/<int:notification_id>/read', methods=['PUT'])
@jwt_required()
def mark_as_read(notification_id):
    actor = get_current_actor()
    notification = Notification.query.filter_by(id=notification_id, user_id=actor.user_id).first()
    if not notification:
        return jsonify({'success': False, 'error': 'Notification not found'}), 404

    notification.is_read = True
    db.session.commit()
    return jsonify({'success': True, 'data': notification.to_dict()}), 200


@notification_bp.route('/read-all', methods=['PUT'])
@jwt_required()
def mark_all_as_read():
    actor = get_current_actor()
    updated = Notification.query.filter_by(user_id=actor.user_id, is_read=False).update(
        {'is_read': True}, synchronize_session=False
    )
    db.session.commit()
    return jsonify({
        'success': True,
        'message': f'{updated} notification(s) marked as read'
    }), 200
