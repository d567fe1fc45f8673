from flask import Blueprint, jsonify

from auth import current_account, permission_required
from models import AcademicYear, Guardian, Message, Room, Student, StudentGroup, Teacher

dashboard_bp = Blueprint('dashboard', __name__, url_prefix='/api/dashboard')


@dashboard_bp.route('/stats')
@permission_required('dashboard', 'read')
def dashboard_stats():
    """Headline counts for the dashboard cards"""
    account = current_account()
    active_year = AcademicYear.query.filter_by(is_active=True).first()

    return jsonify({
        'students': {
            'total': Student.query.count(),
            'active': Student.query.filter_by(status='active').count(),
        },
        'teachers': Teacher.query.filter(Teacher.is_active.is_(True)).count(),
        'guardians': Guardian.query.count(),
        'studentGroups': StudentGroup.query.filter(StudentGroup.is_active.is_(True)).count(),
        'roomsAvailable': Room.query.filter_by(status='available').count(),
        'activeAcademicYear': active_year.name if active_year else None,
        'unreadMessages': Message.query.filter_by(
            receiver_id=account.id, receiver_role=account.role, is_read=False
        ).count(),
    })
