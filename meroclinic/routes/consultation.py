"""
Consultation API Routes
Read side of the consultation records written when appointments complete.
"""
from datetime import datetime
from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required

from meroclinic.models import Consultation, PatientProfile, DoctorProfile
from meroclinic.services import negotiation
from meroclinic.services.exceptions import AppointmentError, AuthorizationViolation, NotFound
from meroclinic.utils.decorators import require_role, get_current_actor

consultation_bp = Blueprint('consultation', __name__, url_prefix='/api/consultations')


def _own_consultations_query(actor):
    if actor.role == 'patient':
        profile = PatientProfile.query.filter_by(user_id=actor.user_id).first()
        return Consultation.query.filter(Consultation.patient_id == profile.id) if profile else None
    if actor.role == 'doctor':
        profile = DoctorProfile.query.filter_by(user_id=actor.user_id).first()
        return Consultation.query.filter(Consultation.doctor_id == profile.id) if profile else None
    return None


@consultation_bp.route('', methods=['GET'])
@jwt_required()
@require_role('patient', 'doctor')
def list_consultations():
    """
    Consultation history of the caller, newest first.
    Query params: page, limit
    """
    actor = get_current_actor()
    page = request.args.get('page', 1, type=int)
    limit = request.args.get('limit', 10, type=int)
    if page < 1:
        page = 1
    if limit < 1 or limit > 100:
        limit = 10

    query = _own_consultations_query(actor)
    if query is None:
        return jsonify({'success': False, 'error': 'Profile not found'}), 404

    pagination = query.order_by(
        Consultation.created_at.desc(),
        Consultation.id.desc()
    ).paginate(page=page, per_page=limit, error_out=False)

    return jsonify({
        'success': True,
        'data': {
            'consultations': [c.to_dict() for c in pagination.items],
            'pagination': {
                'page': page,
                'limit': limit,
                'total': pagination.total,
                'pages': pagination.pages
            }
        }
    }), 200


@consultation_bp.route('/follow-ups', methods=['GET'])
@jwt_required()
@require_role('patient', 'doctor')
def upcoming_follow_ups():
    """Follow-ups due from now on, soonest first (dashboard widget)."""
    actor = get_current_actor()
    limit = request.args.get('limit', 5, type=int)
    if limit < 1 or limit > 50:
        limit = 5

    query = _own_consultations_query(actor)
    if query is None:
        return jsonify({'success': False, 'error': 'Profile not found'}), 404

    follow_ups = query.filter(
        Consultation.follow_up.is_(True),
        Consultation.follow_up_date >= datetime.utcnow()
    ).order_by(Consultation.follow_up_date.asc()).limit(limit).all()

    return jsonify({
        'success': True,
        'data': [c.to_dict() for c in follow_ups]
    }), 200


@consultation_bp.route('/appointment/<int:appointment_id>', methods=['GET'])
@jwt_required()
def get_consultation_for_appointment(appointment_id):
    """
    Consultation of a completed appointment, with the party details the
    report renderer needs.
    """
    actor = get_current_actor()
    try:
        appointment = negotiation.get_appointment(appointment_id)
        if not negotiation.is_party(actor, appointment):
            raise AuthorizationViolation('You are not a party to this appointment')
        consultation = appointment.consultation
        if consultation is None:
            raise NotFound('No consultation recorded for this appointment')
    except AppointmentError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({
        'success': True,
        'data': consultation.to_report()
    }), 200
