from datetime import datetime
from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required

from meroclinic.models import Appointment, PatientProfile, DoctorProfile
from meroclinic.models.appointment_state import (
    STATUSES, ACTIVE_STATUSES, PENDING, PROPOSED, CONFIRMED, COMPLETED, OFFLINE,
)
from meroclinic.services import negotiation
from meroclinic.services.consultation_service import complete_appointment
from meroclinic.services.exceptions import AppointmentError, AuthorizationViolation
from meroclinic.utils.decorators import require_role, get_current_actor
from meroclinic.utils.validators import parse_date_time, parse_iso_datetime, clean_text

appointment_bp = Blueprint('appointment', __name__, url_prefix='/api/appointments')


def _error(e: AppointmentError):
    return jsonify(e.to_dict()), e.status_code


def _json_object(default=None):
    """The request body if it is a JSON object; default when the body is missing."""
    data = request.get_json(silent=True)
    if data is None:
        return default
    return data if isinstance(data, dict) else None


def _invalid_body():
    return jsonify({
        'success': False,
        'error': 'Request body must be JSON'
    }), 400


def _own_appointments_query(actor):
    """Appointments where the caller is the patient or the doctor of record."""
    if actor.role == 'patient':
        profile = PatientProfile.query.filter_by(user_id=actor.user_id).first()
        if not profile:
            return None
        return Appointment.query.filter(Appointment.patient_id == profile.id)
    if actor.role == 'doctor':
        profile = DoctorProfile.query.filter_by(user_id=actor.user_id).first()
        if not profile:
            return None
        return Appointment.query.filter(Appointment.doctor_id == profile.id)
    return None


@appointment_bp.route('', methods=['GET'])
@jwt_required()
@require_role('patient', 'doctor')
def list_appointments():
    """
    List the caller's appointments, newest first.
    Query params:
        status: all (default) or one of pending, proposed, confirmed, completed, cancelled
        page, limit: Pagination
    """
    actor = get_current_actor()
    page = request.args.get('page', 1, type=int)
    limit = request.args.get('limit', 20, type=int)
    status = request.args.get('status', 'all', type=str)

    if page < 1:
        page = 1
    if limit < 1 or limit > 100:
        limit = 20

    if status != 'all' and status not in STATUSES:
        return jsonify({
            'success': False,
            'error': f'Invalid status. Valid values: all, {", ".join(STATUSES)}'
        }), 400

    query = _own_appointments_query(actor)
    if query is None:
        return jsonify({'success': False, 'error': 'Profile not found'}), 404

    if status != 'all':
        query = query.filter(Appointment.status == status)

    appointments = query.order_by(
        Appointment.created_at.desc(),
        Appointment.id.desc()
    ).paginate(page=page, per_page=limit, error_out=False)

    return jsonify({
        'success': True,
        'data': [apt.to_dict() for apt in appointments.items],
        'pagination': {
            'page': page,
            'limit': limit,
            'total': appointments.total,
            'pages': appointments.pages,
            'has_next': appointments.has_next,
            'has_prev': appointments.has_prev
        }
    }), 200


@appointment_bp.route('/active', methods=['GET'])
@jwt_required()
@require_role('doctor')
def list_active_appointments():
    """Doctor dashboard: the next open requests, earliest requested time first."""
    actor = get_current_actor()
    limit = request.args.get('limit', 5, type=int)
    if limit < 1 or limit > 50:
        limit = 5

    query = _own_appointments_query(actor)
    if query is None:
        return jsonify({'success': False, 'error': 'Doctor profile not found'}), 404

    appointments = query.filter(
        Appointment.status.in_(ACTIVE_STATUSES)
    ).order_by(Appointment.requested_date.asc()).limit(limit).all()

    return jsonify({
        'success': True,
        'data': [apt.to_dict() for apt in appointments]
    }), 200


@appointment_bp.route('/stats', methods=['GET'])
@jwt_required()
@require_role('patient', 'doctor')
def appointment_stats():
    """Counts for the home dashboard: upcoming, awaiting agreement, completed."""
    actor = get_current_actor()
    query = _own_appointments_query(actor)
    if query is None:
        return jsonify({'success': False, 'error': 'Profile not found'}), 404

    statuses = [row.status for row in query.with_entities(Appointment.status).all()]
    return jsonify({
        'success': True,
        'data': {
            'upcoming': sum(1 for s in statuses if s == CONFIRMED),
            'pending': sum(1 for s in statuses if s in (PENDING, PROPOSED)),
            'completed': sum(1 for s in statuses if s == COMPLETED),
        }
    }), 200


@appointment_bp.route('/changes', methods=['GET'])
@jwt_required()
@require_role('patient', 'doctor')
def list_changed_appointments():
    """
    Appointments of the caller modified after ?since=<ISO timestamp>.
    List views poll this to know when to refetch.
    """
    actor = get_current_actor()
    since_str = request.args.get('since', type=str)
    if not since_str:
        return jsonify({'success': False, 'error': 'Query parameter "since" is required', 'field': 'since'}), 400
    try:
        since = parse_iso_datetime(since_str, 'since')
    except AppointmentError as e:
        return _error(e)

    query = _own_appointments_query(actor)
    if query is None:
        return jsonify({'success': False, 'error': 'Profile not found'}), 404

    changed = query.filter(Appointment.updated_at > since).order_by(Appointment.updated_at.asc()).all()
    return jsonify({
        'success': True,
        'data': [apt.to_dict() for apt in changed],
        'checked_at': datetime.utcnow().isoformat()
    }), 200


@appointment_bp.route('/<int:appointment_id>', methods=['GET'])
@jwt_required()
def get_appointment(appointment_id):
    """Get single appointment; only its patient or doctor may read it."""
    actor = get_current_actor()
    try:
        appointment = negotiation.get_appointment(appointment_id)
        if not negotiation.is_party(actor, appointment):
            raise AuthorizationViolation('You are not a party to this appointment')
    except AppointmentError as e:
        return _error(e)

    data = appointment.to_dict()
    data['consultation_id'] = appointment.consultation.id if appointment.consultation else None
    return jsonify({'success': True, 'data': data}), 200


@appointment_bp.route('', methods=['POST'])
@jwt_required()
@require_role('patient')
def book_appointment():
    """
    Request an appointment
    Access: patient
    Body: doctor_id, date (YYYY-MM-DD), time (HH:MM), notes, appointment_type (online/offline)
    """
    data = _json_object()
    if not data:
        return _invalid_body()

    if not data.get('doctor_id'):
        return jsonify({
            'success': False,
            'error': 'Field "doctor_id" is required',
            'field': 'doctor_id'
        }), 400

    try:
        doctor_id = int(data['doctor_id'])
    except (TypeError, ValueError):
        return jsonify({
            'success': False,
            'error': 'Field "doctor_id" must be an integer',
            'field': 'doctor_id'
        }), 400

    actor = get_current_actor()
    try:
        requested_date = parse_date_time(data.get('date'), data.get('time'))
        appointment = negotiation.book_appointment(
            actor,
            doctor_id=doctor_id,
            requested_date=requested_date,
            patient_notes=clean_text(data.get('notes', data.get('patient_notes'))),
            appointment_type=data.get('appointment_type') or OFFLINE,
        )
    except AppointmentError as e:
        return _error(e)

    return jsonify({
        'success': True,
        'data': appointment.to_dict(),
        'message': 'Appointment requested successfully'
    }), 201


@appointment_bp.route('/<int:appointment_id>/propose', methods=['PUT'])
@jwt_required()
@require_role('doctor')
def propose_time(appointment_id):
    """
    Propose a different time for a pending request
    Access: doctor
    Body: date, time, location, notes
    """
    data = _json_object(default={})
    if data is None:
        return _invalid_body()
    actor = get_current_actor()
    try:
        proposed_date = parse_date_time(data.get('date'), data.get('time'))
        appointment = negotiation.propose_time(
            actor,
            appointment_id,
            proposed_date=proposed_date,
            location=clean_text(data.get('location')),
            doctor_notes=clean_text(data.get('notes', data.get('doctor_notes'))),
        )
    except AppointmentError as e:
        return _error(e)

    return jsonify({
        'success': True,
        'data': appointment.to_dict(),
        'message': 'Appointment time proposed'
    }), 200


@appointment_bp.route('/<int:appointment_id>/accept', methods=['PUT'])
@jwt_required()
@require_role('doctor')
def accept_request(appointment_id):
    """Accept the requested time as is. Access: doctor"""
    actor = get_current_actor()
    try:
        appointment = negotiation.accept_request(actor, appointment_id)
    except AppointmentError as e:
        return _error(e)

    return jsonify({
        'success': True,
        'data': appointment.to_dict(),
        'message': 'Appointment confirmed'
    }), 200


@appointment_bp.route('/<int:appointment_id>/confirm', methods=['PUT'])
@jwt_required()
@require_role('patient')
def confirm_proposal(appointment_id):
    """Agree to the doctor's proposed time. Access: patient"""
    actor = get_current_actor()
    try:
        appointment = negotiation.confirm_proposal(actor, appointment_id)
    except AppointmentError as e:
        return _error(e)

    return jsonify({
        'success': True,
        'data': appointment.to_dict(),
        'message': 'Appointment confirmed'
    }), 200


@appointment_bp.route('/<int:appointment_id>/cancel', methods=['PUT'])
@jwt_required()
@require_role('patient', 'doctor')
def cancel_appointment(appointment_id):
    """Cancel a pending, proposed or confirmed appointment. Access: patient, doctor"""
    actor = get_current_actor()
    try:
        appointment = negotiation.cancel_appointment(actor, appointment_id)
    except AppointmentError as e:
        return _error(e)

    return jsonify({
        'success': True,
        'data': appointment.to_dict(),
        'message': 'Appointment cancelled'
    }), 200


@appointment_bp.route('/<int:appointment_id>/complete', methods=['PUT'])
@jwt_required()
@require_role('doctor')
def complete(appointment_id):
    """
    Complete a confirmed appointment and record the consultation
    Access: doctor
    Body: symptoms, medicines, additional_advice, follow_up, follow_up_date, follow_up_time
    """
    data = _json_object(default={})
    if data is None:
        return _invalid_body()
    actor = get_current_actor()
    try:
        result = complete_appointment(actor, appointment_id, data)
    except AppointmentError as e:
        return _error(e)

    return jsonify({
        'success': True,
        'data': result.to_dict(),
        'message': 'Consultation recorded and appointment completed'
    }), 200
