"""
Student report aggregation and the report endpoints.

The aggregation helpers are plain functions over model objects so they can
be used by the API, the PDF builder and the tests alike.
"""
import io
import logging
import math
from datetime import date

from flask import Blueprint, current_app, jsonify, request, send_file

from auth import permission_required
from exceptions import NotFoundError, ValidationError
from models import AcademicYear, AttendanceRecord, Grade, ReportTemplate, Student, StudentGroup, db
from school_settings import get_setting

logger = logging.getLogger(__name__)

reports_bp = Blueprint('reports', __name__, url_prefix='/api/reports')

NO_DATA_MESSAGE = 'Geen gegevens beschikbaar voor rapportage'
DEFAULT_BEHAVIOR_GRADE = 7

BUCKETS = {
    'test': 'tests',
    'toets': 'tests',
    'taak': 'tasks',
    'opdracht': 'tasks',
    'huiswerk': 'homework',
}


def round_half_up(value):
    return int(math.floor(value + 0.5))


def attendance_summary(records):
    total = len(records)
    present = sum(1 for record in records if record.status == 'present')
    absent = sum(1 for record in records if record.status == 'absent')
    late = sum(1 for record in records if record.status == 'late')
    return {
        'total': total,
        'present': present,
        'absent': absent,
        'late': late,
        'percentage': round_half_up(present / total * 100) if total else 0,
    }


def scaled_score(grade):
    """Score on the 10-point scale"""
    return grade.score / grade.max_score * 10


def bucket_for(grade_type):
    return BUCKETS.get((grade_type or '').strip().lower(), 'tests')


def subject_name(grade):
    if grade.program is not None:
        return grade.program.name
    return f"Vak {grade.program_id}"


def bucket_average(grades):
    if not grades:
        return None
    return sum(scaled_score(grade) for grade in grades) / len(grades)


def weighted_average(grades):
    total_weight = sum(grade.weight for grade in grades)
    if not total_weight:
        return 0
    return sum(scaled_score(grade) * grade.weight for grade in grades) / total_weight


def performance_comment(*averages):
    values = [value for value in averages if value is not None]
    if not values:
        return 'Goed'
    average = sum(values) / len(values)
    if average >= 8:
        return 'Uitstekend'
    if average >= 7:
        return 'Goed'
    if average >= 6:
        return 'Voldoende'
    return 'Aandacht nodig'


def score_band(score):
    if score >= 6.5:
        return 'green'
    if score >= 5.5:
        return 'orange'
    return 'red'


def grade_buckets(grades):
    """Group grades per subject into tests/tasks/homework with their averages"""
    subjects = {}
    for grade in grades:
        entry = subjects.setdefault(subject_name(grade), {'tests': [], 'tasks': [], 'homework': []})
        entry[bucket_for(grade.grade_type)].append(grade)

    result = {}
    for subject, buckets in subjects.items():
        all_grades = buckets['tests'] + buckets['tasks'] + buckets['homework']
        test_average = bucket_average(buckets['tests'])
        task_average = bucket_average(buckets['tasks'])
        result[subject] = {
            'tests': [grade.to_dict() for grade in buckets['tests']],
            'tasks': [grade.to_dict() for grade in buckets['tasks']],
            'homework': [grade.to_dict() for grade in buckets['homework']],
            'testAverage': test_average,
            'taskAverage': task_average,
            'homeworkAverage': bucket_average(buckets['homework']),
            'average': weighted_average(all_grades),
            'comment': performance_comment(test_average, task_average),
        }
    return result


def _lookup(mapping, student_id):
    if not isinstance(mapping, dict):
        return None
    return mapping.get(str(student_id), mapping.get(student_id))


def student_report(student, behavior=None, comments=None):
    records = AttendanceRecord.query.filter_by(student_id=student.id).all()
    grades = Grade.query.filter_by(student_id=student.id).order_by(Grade.date).all()

    behavior = _lookup(behavior, student.id)
    if not isinstance(behavior, dict):
        behavior = {}
    info = student.to_dict()
    group = student.student_group
    info['className'] = group.name if group else None
    year = None
    if group is not None and group.academic_year_id:
        year = db.session.get(AcademicYear, group.academic_year_id)
    if year is None:
        year = AcademicYear.query.filter_by(is_active=True).first()
    info['academicYear'] = year.name if year else None

    return {
        'student': info,
        'attendance': attendance_summary(records),
        'grades': grade_buckets(grades),
        'behavior': {
            'studentId': student.id,
            'grade': behavior.get('grade', DEFAULT_BEHAVIOR_GRADE),
            'comments': behavior.get('comments') or '',
        },
        'generalComments': _lookup(comments, student.id) or '',
    }


def _as_id(value, message):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(message)


def target_students(payload):
    """Resolve the students a report request is about"""
    report_type = payload.get('reportType', 'class')
    if report_type == 'class':
        class_id = payload.get('classId')
        if not class_id:
            raise ValidationError('Selecteer een klas')
        group = db.session.get(StudentGroup, _as_id(class_id, 'Ongeldige klas'))
        if group is None:
            raise NotFoundError('Klas niet gevonden')
        return group.students.order_by(Student.last_name, Student.first_name).all()
    if report_type == 'individual':
        student_id = payload.get('studentId')
        if not student_id:
            raise ValidationError('Selecteer een leerling')
        student = db.session.get(Student, _as_id(student_id, 'Ongeldige leerling'))
        return [student] if student is not None else []
    raise ValidationError(f"Onbekend rapporttype '{report_type}'")


def report_template(payload):
    template_id = payload.get('templateId')
    if template_id:
        template = db.session.get(ReportTemplate, _as_id(template_id, 'Ongeldig rapportsjabloon'))
        if template is None:
            raise NotFoundError('Rapportsjabloon niet gevonden')
        return template
    return ReportTemplate.query.filter_by(is_default=True).first()


def school_name(template=None):
    if template is not None and template.school_name:
        return template.school_name
    return get_setting('school', 'schoolName') or current_app.config['SCHOOL_NAME']


def build_reports(payload):
    if not isinstance(payload, dict):
        raise ValidationError('Ongeldige gegevens: JSON object verwacht.')
    students = target_students(payload)
    behavior = payload.get('behavior')
    comments = payload.get('comments')
    return [student_report(student, behavior, comments) for student in students]


@reports_bp.route('/preview', methods=['POST'])
@permission_required('reports', 'read')
def preview():
    return jsonify(build_reports(request.get_json(silent=True)))


@reports_bp.route('/pdf', methods=['POST'])
@permission_required('reports', 'read')
def download_pdf():
    from report_pdf import render_reports

    payload = request.get_json(silent=True)
    reports = build_reports(payload)
    if not reports:
        raise ValidationError(NO_DATA_MESSAGE)

    template = report_template(payload)
    pdf_bytes = render_reports(reports, school_name(template), template)
    logger.info("Generated report PDF for %d student(s)", len(reports))

    student = reports[0]['student']
    if payload.get('reportType', 'class') == 'individual':
        filename = f"rapport_{student['lastName']}_{student['firstName']}_{date.today().isoformat()}.pdf"
    else:
        filename = f"rapport_klas_{student['className'] or payload['classId']}_{date.today().isoformat()}.pdf"
    filename = filename.replace(' ', '_')

    return send_file(
        io.BytesIO(pdf_bytes),
        mimetype='application/pdf',
        as_attachment=True,
        download_name=filename
    )
