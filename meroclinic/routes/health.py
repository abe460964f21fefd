"""
Health check endpoints for monitoring and load balancers
"""
from flask import Blueprint, jsonify
from meroclinic.extensions import db
from meroclinic.models import AppointmentEvent
from meroclinic.models.notification import EVENT_PENDING, EVENT_FAILED
from datetime import datetime

health_bp = Blueprint('health', __name__, url_prefix='/health')


@health_bp.route('', methods=['GET'])
@health_bp.route('/ping', methods=['GET'])
def health_check():
    """Basic health check - no database connection"""
    return jsonify({
        'status': 'healthy',
        'timestamp': datetime.utcnow().isoformat(),
        'service': 'meroclinic-backend'
    }), 200


@health_bp.route('/ready', methods=['GET'])
def readiness_check():
    """Readiness check - includes database connection"""
    try:
        db.session.execute(db.text('SELECT 1'))
        db_status = 'connected'
    except Exception as e:
        db_status = f'error: {str(e)}'

    return jsonify({
        'status': 'ready' if db_status == 'connected' else 'not_ready',
        'database': db_status,
        'timestamp': datetime.utcnow().isoformat()
    }), 200 if db_status == 'connected' else 503


@health_bp.route('/live', methods=['GET'])
def liveness_check():
    """Liveness check for Kubernetes/containers"""
    return jsonify({
        'status': 'alive',
        'timestamp': datetime.utcnow().isoformat()
    }), 200


@health_bp.route('/notifications', methods=['GET'])
def notification_backlog():
    """Outbox backlog: events waiting for delivery and events given up on"""
    try:
        pending = AppointmentEvent.query.filter_by(status=EVENT_PENDING).count()
        failed = AppointmentEvent.query.filter_by(status=EVENT_FAILED).count()
    except Exception as e:
        return jsonify({
            'status': 'unhealthy',
            'error': str(e),
            'timestamp': datetime.utcnow().isoformat()
        }), 503

    return jsonify({
        'status': 'healthy' if failed == 0 else 'degraded',
        'pending_events': pending,
        'failed_events': failed,
        'timestamp': datetime.utcnow().isoformat()
    }), 200
