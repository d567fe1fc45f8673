"""
REST endpoints for the administration entities.

Most entities only need the standard list/detail/create/update/delete routes
from ``CrudResource``; the extra routes below cover class membership, guardian
links, academic year activation and per-student results.
"""
import logging

from flask import Blueprint, jsonify, request

from auth import permission_required
from crud import CrudResource
from exceptions import ConflictError, NotFoundError, ValidationError
from forms import (
    AcademicYearForm, AttendanceForm, CourseForm, EnrollmentForm, GradeForm, GuardianForm, HolidayForm,
    ProgramForm, ReportTemplateForm, RoomForm, StudentForm, StudentGroupForm, TeacherForm,
)
from listing import ListSpec
from models import (
    AcademicYear, AttendanceRecord, Course, Enrollment, Grade, Guardian, Holiday, Program, ReportTemplate, Room,
    Student, StudentGroup, StudentGuardian, Teacher, db,
)
from reports import attendance_summary

logger = logging.getLogger(__name__)

api_bp = Blueprint('api', __name__, url_prefix='/api')


def check_class_capacity(group_id):
    """Refuse to place a student in a class that is already full"""
    group = db.session.get(StudentGroup, group_id)
    if group is None:
        raise ValidationError('Klas bestaat niet', errors=[{'path': 'studentGroupId', 'message': 'Onbekende klas'}])
    if group.is_full():
        raise ConflictError(f"Klas {group.name} is vol ({group.capacity} leerlingen)")
    return group


class StudentResource(CrudResource):
    def before_save(self, record, payload, created):
        if not record.student_group_id:
            return
        with db.session.no_autoflush:
            previous = None
            if not created:
                previous = db.session.query(Student.student_group_id).filter(Student.id == record.id).scalar()
            if previous != record.student_group_id:
                check_class_capacity(record.student_group_id)


class AcademicYearResource(CrudResource):
    def before_save(self, record, payload, created):
        if record.is_active:
            record.activate()


class EnrollmentResource(CrudResource):
    def before_save(self, record, payload, created):
        course = db.session.get(Course, record.course_id)
        if course is None:
            raise ValidationError('Vak bestaat niet', errors=[{'path': 'courseId', 'message': 'Onbekend vak'}])
        if db.session.get(Student, record.student_id) is None:
            raise ValidationError('Leerling bestaat niet',
                                  errors=[{'path': 'studentId', 'message': 'Onbekende leerling'}])
        if created and record.status == 'active':
            active = Enrollment.query.filter_by(course_id=course.id, status='active').count()
            if active >= course.capacity:
                raise ConflictError(f"{course.name} zit vol")


class ReportTemplateResource(CrudResource):
    def before_save(self, record, payload, created):
        if record.is_default:
            others = ReportTemplate.query.filter(ReportTemplate.is_default.is_(True))
            if record.id is not None:
                others = others.filter(ReportTemplate.id != record.id)
            others.update({'is_default': False}, synchronize_session='fetch')


students = StudentResource(
    Student, StudentForm, 'students', 'students', 'Leerling',
    ListSpec(
        search_fields=(Student.first_name, Student.last_name, Student.student_id, Student.email),
        filters={
            'status': Student.status,
            'programId': Student.program_id,
            'studentGroupId': Student.student_group_id,
            'enrollmentYear': Student.enrollment_year,
        },
        default_order=(Student.last_name, Student.first_name),
    ),
    unique_fields=('student_id',),
).register(api_bp)

teachers = CrudResource(
    Teacher, TeacherForm, 'teachers', 'teachers', 'Docent',
    ListSpec(
        search_fields=(Teacher.first_name, Teacher.last_name, Teacher.email, Teacher.specialty),
        bool_filters={'isActive': Teacher.is_active},
        default_order=(Teacher.last_name, Teacher.first_name),
    ),
    unique_fields=('email',),
).register(api_bp)

guardians = CrudResource(
    Guardian, GuardianForm, 'guardians', 'guardians', 'Voogd',
    ListSpec(
        search_fields=(Guardian.first_name, Guardian.last_name, Guardian.email, Guardian.phone),
        filters={'relationship': Guardian.relationship},
        bool_filters={'emergencyContact': Guardian.is_emergency_contact},
        default_order=(Guardian.last_name, Guardian.first_name),
    ),
).register(api_bp)

programs = CrudResource(
    Program, ProgramForm, 'programs', 'programs', 'Programma',
    ListSpec(search_fields=(Program.name, Program.code), default_order=Program.name),
    unique_fields=('code',),
).register(api_bp)

courses = CrudResource(
    Course, CourseForm, 'courses', 'programs', 'Vak',
    ListSpec(
        search_fields=(Course.name, Course.code),
        filters={'programId': Course.program_id, 'instructorId': Course.instructor_id},
        default_order=Course.name,
    ),
    unique_fields=('code',),
).register(api_bp)

academic_years = AcademicYearResource(
    AcademicYear, AcademicYearForm, 'academic-years', 'academic_years', 'Schooljaar',
    ListSpec(
        search_fields=(AcademicYear.name, AcademicYear.description),
        bool_filters={'isActive': AcademicYear.is_active},
        default_order=AcademicYear.start_date.desc(),
    ),
    unique_fields=('name',),
).register(api_bp)

holidays = CrudResource(
    Holiday, HolidayForm, 'holidays', 'academic_years', 'Vakantie',
    ListSpec(
        search_fields=(Holiday.name, Holiday.description),
        filters={'academicYearId': Holiday.academic_year_id, 'type': Holiday.type},
        default_order=Holiday.start_date,
    ),
).register(api_bp)

student_groups = CrudResource(
    StudentGroup, StudentGroupForm, 'student-groups', 'classes', 'Klas',
    ListSpec(
        search_fields=(StudentGroup.name, StudentGroup.location, StudentGroup.description),
        filters={
            'academicYearId': StudentGroup.academic_year_id,
            'programId': StudentGroup.program_id,
            'instructorId': StudentGroup.instructor_id,
        },
        bool_filters={'isActive': StudentGroup.is_active},
        default_order=StudentGroup.name,
    ),
).register(api_bp)

enrollments = EnrollmentResource(
    Enrollment, EnrollmentForm, 'enrollments', 'enrollments', 'Inschrijving',
    ListSpec(
        filters={'studentId': Enrollment.student_id, 'courseId': Enrollment.course_id, 'status': Enrollment.status},
        default_order=Enrollment.enrollment_date.desc(),
    ),
).register(api_bp)

rooms = CrudResource(
    Room, RoomForm, 'rooms', 'rooms', 'Lokaal',
    ListSpec(
        search_fields=(Room.name, Room.location, Room.current_use),
        filters={'status': Room.status, 'location': Room.location},
        default_order=Room.name,
    ),
    unique_fields=('name',),
).register(api_bp)

attendance = CrudResource(
    AttendanceRecord, AttendanceForm, 'attendance', 'attendance', 'Aanwezigheid',
    ListSpec(
        search_fields=(AttendanceRecord.notes,),
        filters={
            'studentId': AttendanceRecord.student_id,
            'courseId': AttendanceRecord.course_id,
            'status': AttendanceRecord.status,
            'date': AttendanceRecord.date,
        },
        default_order=AttendanceRecord.date.desc(),
    ),
).register(api_bp)

grades = CrudResource(
    Grade, GradeForm, 'grades', 'grades', 'Cijfer',
    ListSpec(
        search_fields=(Grade.grade_type, Grade.notes),
        filters={'studentId': Grade.student_id, 'programId': Grade.program_id, 'gradeType': Grade.grade_type},
        default_order=Grade.date.desc(),
    ),
).register(api_bp)

report_templates = ReportTemplateResource(
    ReportTemplate, ReportTemplateForm, 'report-templates', 'reports', 'Rapportsjabloon',
    ListSpec(
        search_fields=(ReportTemplate.name, ReportTemplate.description),
        filters={'reportType': ReportTemplate.report_type},
        default_order=ReportTemplate.name,
    ),
    unique_fields=('name',),
).register(api_bp)


# Rooms
@api_bp.route('/rooms/locations')
@permission_required('rooms', 'read')
def room_locations():
    rows = db.session.query(Room.location).distinct().order_by(Room.location).all()
    return jsonify({'locations': [row[0] for row in rows if row[0]]})


# Academic years
@api_bp.route('/academic-years/<int:record_id>/activate', methods=['POST'])
@permission_required('academic_years', 'update')
def activate_academic_year(record_id):
    year = academic_years.get_or_404(record_id)
    year.activate()
    db.session.commit()
    logger.info("Academic year %s activated", year.id)
    return jsonify(year.to_dict())


@api_bp.route('/academic-years/active')
@permission_required('academic_years', 'read')
def active_academic_year():
    year = AcademicYear.query.filter_by(is_active=True).first()
    if year is None:
        raise NotFoundError('Geen actief schooljaar')
    return jsonify(year.to_dict())


# Students
def _class_members(group_id):
    group = student_groups.get_or_404(group_id)
    members = group.students.order_by(Student.last_name, Student.first_name).all()
    return jsonify([student.to_dict() for student in members])


@api_bp.route('/students/class/<int:group_id>')
@permission_required('students', 'read')
def students_in_class(group_id):
    return _class_members(group_id)


def _link_dict(link):
    data = link.guardian.to_dict()
    data['isPrimary'] = link.is_primary
    return data


@api_bp.route('/students/<int:record_id>/guardians')
@permission_required('guardians', 'read')
def student_guardians(record_id):
    student = students.get_or_404(record_id)
    return jsonify([_link_dict(link) for link in student.guardian_links])


@api_bp.route('/students/<int:record_id>/guardians', methods=['POST'])
@permission_required('guardians', 'update')
def link_guardian(record_id):
    student = students.get_or_404(record_id)
    payload = request.get_json(silent=True) or {}
    guardian_id = payload.get('guardianId')
    if not isinstance(guardian_id, int) or isinstance(guardian_id, bool):
        raise ValidationError('Voogd is verplicht', errors=[{'path': 'guardianId', 'message': 'Voogd is verplicht'}])
    guardians.get_or_404(guardian_id)

    if StudentGuardian.query.filter_by(student_id=student.id, guardian_id=guardian_id).first():
        raise ConflictError('Deze voogd is al gekoppeld aan de leerling')

    link = StudentGuardian(student_id=student.id, guardian_id=guardian_id, is_primary=bool(payload.get('isPrimary')))
    if link.is_primary:
        for other in student.guardian_links:
            other.is_primary = False
    db.session.add(link)
    db.session.commit()
    logger.info("Guardian %s linked to student %s", guardian_id, student.id)
    return jsonify(_link_dict(link)), 201


@api_bp.route('/students/<int:record_id>/guardians/<int:guardian_id>', methods=['DELETE'])
@permission_required('guardians', 'update')
def unlink_guardian(record_id, guardian_id):
    link = StudentGuardian.query.filter_by(student_id=record_id, guardian_id=guardian_id).first()
    if link is None:
        raise NotFoundError('Koppeling niet gevonden')
    db.session.delete(link)
    db.session.commit()
    logger.info("Guardian %s unlinked from student %s", guardian_id, record_id)
    return jsonify({'message': 'Koppeling verwijderd'})


@api_bp.route('/guardians/<int:record_id>/students')
@permission_required('guardians', 'read')
def guardian_students(record_id):
    guardian = guardians.get_or_404(record_id)
    return jsonify([link.student.to_dict() for link in guardian.student_links])


# Classes
@api_bp.route('/student-groups/<int:record_id>/students')
@permission_required('classes', 'read')
def class_students(record_id):
    return _class_members(record_id)


@api_bp.route('/student-groups/<int:record_id>/students', methods=['POST'])
@permission_required('students', 'update')
def add_student_to_class(record_id):
    group = student_groups.get_or_404(record_id)
    payload = request.get_json(silent=True) or {}
    student_id = payload.get('studentId')
    if not isinstance(student_id, int) or isinstance(student_id, bool):
        raise ValidationError('Leerling is verplicht',
                              errors=[{'path': 'studentId', 'message': 'Leerling is verplicht'}])
    student = students.get_or_404(student_id)

    if student.student_group_id != group.id:
        check_class_capacity(group.id)
        student.student_group_id = group.id
        db.session.commit()
        logger.info("Student %s placed in class %s", student.id, group.id)
    return jsonify(group.to_dict())


@api_bp.route('/student-groups/<int:record_id>/students/<int:student_id>', methods=['DELETE'])
@permission_required('students', 'update')
def remove_student_from_class(record_id, student_id):
    group = student_groups.get_or_404(record_id)
    student = students.get_or_404(student_id)
    if student.student_group_id != group.id:
        raise NotFoundError('Leerling zit niet in deze klas')
    student.student_group_id = None
    db.session.commit()
    logger.info("Student %s removed from class %s", student.id, group.id)
    return jsonify(group.to_dict())


# Results
@api_bp.route('/attendance/student/<int:student_id>')
@permission_required('attendance', 'read')
def student_attendance(student_id):
    students.get_or_404(student_id)
    records = AttendanceRecord.query.filter_by(student_id=student_id).order_by(AttendanceRecord.date.desc()).all()
    return jsonify([record.to_dict() for record in records])


@api_bp.route('/attendance/student/<int:student_id>/summary')
@permission_required('attendance', 'read')
def student_attendance_summary(student_id):
    students.get_or_404(student_id)
    return jsonify(attendance_summary(AttendanceRecord.query.filter_by(student_id=student_id).all()))


@api_bp.route('/grades/student/<int:student_id>')
@permission_required('grades', 'read')
def student_grades(student_id):
    students.get_or_404(student_id)
    records = Grade.query.filter_by(student_id=student_id).order_by(Grade.date.desc()).all()
    return jsonify([record.to_dict() for record in records])
