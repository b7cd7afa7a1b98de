from datetime import datetime

from flask import Blueprint, request, jsonify

from eclinic.services import report_service
from eclinic.utils.decorators import get_current_user, require_role
from eclinic.utils.roles import Role

report_bp = Blueprint('report', __name__, url_prefix='/api/reports')


def _arg(*names):
    """First non-empty query parameter among names (camelCase or snake_case)."""
    for name in names:
        value = request.args.get(name, type=str)
        if value:
            return value.strip()
    return None


def _report(report_type, filters, rows):
    return jsonify({
        'success': True,
        'report_type': report_type,
        'generated_at': datetime.now().isoformat(),
        'filters': filters,
        'count': len(rows),
        'data': rows
    }), 200


@report_bp.route('/appointments', methods=['GET'])
@require_role(Role.NURSE, Role.ADMIN)
def appointment_report():
    """
    Query params: start_date, end_date (YYYY-MM-DD), status, school_year,
    nurse_id (admins only)
    """
    filters = {
        'start_date': _arg('start_date', 'startDate'),
        'end_date': _arg('end_date', 'endDate'),
        'status': _arg('status'),
        'nurse_id': _arg('nurse_id', 'nurseId'),
        'school_year': _arg('school_year', 'schoolYear', 'semester'),
    }
    rows = report_service.appointment_report(get_current_user(), **filters)
    return _report('Appointment Report', filters, rows)


@report_bp.route('/medical-records', methods=['GET'])
@require_role(Role.NURSE, Role.ADMIN)
def medical_record_report():
    """
    Query params: start_date, end_date, record_type, student_id, school_year,
    nurse_id (admins only)
    """
    filters = {
        'start_date': _arg('start_date', 'startDate'),
        'end_date': _arg('end_date', 'endDate'),
        'record_type': _arg('record_type', 'recordType'),
        'student_id': _arg('student_id', 'studentId'),
        'nurse_id': _arg('nurse_id', 'nurseId'),
        'school_year': _arg('school_year', 'schoolYear', 'semester'),
    }
    rows = report_service.medical_record_report(get_current_user(), **filters)
    return _report('Medical Records Report', filters, rows)


@report_bp.route('/students', methods=['GET'])
@require_role(Role.NURSE, Role.ADMIN)
def student_report():
    """Query params: department, school_year, school_level"""
    filters = {
        'department': _arg('department'),
        'school_year': _arg('school_year', 'schoolYear', 'semester'),
        'school_level': _arg('school_level', 'schoolLevel'),
    }
    rows = report_service.student_report(get_current_user(), **filters)
    return _report('Student Report', filters, rows)


@report_bp.route('/statistics', methods=['GET'])
@require_role(Role.NURSE, Role.ADMIN)
def report_statistics():
    """Query params: period = month (default) | quarter | semester | year"""
    stats = report_service.statistics(get_current_user(), period=_arg('period') or 'month')
    return jsonify({
        'success': True,
        'data': stats
    }), 200
