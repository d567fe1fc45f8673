from datetime import datetime, date
import json

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def camel_case(name):
    head, *tail = name.split('_')
    return head + ''.join(part.title() for part in tail)


def snake_case(name):
    out = []
    for char in name:
        if char.isupper():
            out.append('_')
            out.append(char.lower())
        else:
            out.append(char)
    return ''.join(out)


def _json_value(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class SerializerMixin:
    """Column based JSON serialisation with camelCase keys, as the web client expects"""
    __json_exclude__ = ()

    def to_dict(self):
        data = {}
        for column in self.__table__.columns:
            if column.key in self.__json_exclude__:
                continue
            data[camel_case(column.key)] = _json_value(getattr(self, column.key))
        return data


# Academic calendar
class AcademicYear(SerializerMixin, db.Model):
    __tablename__ = 'academic_years'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False, unique=True)  # e.g. 2024-2025
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    registration_start_date = db.Column(db.Date)
    registration_end_date = db.Column(db.Date)
    final_report_date = db.Column(db.Date)
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    holidays = db.relationship('Holiday', backref='academic_year', cascade='all, delete-orphan')

    def activate(self):
        """Make this the only active academic year"""
        others = AcademicYear.query
        if self.id is not None:
            others = others.filter(AcademicYear.id != self.id)
        others.update({'is_active': False}, synchronize_session='fetch')
        self.is_active = True


class Holiday(SerializerMixin, db.Model):
    __tablename__ = 'holidays'

    TYPES = ('vacation', 'public_holiday', 'study_break')

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    type = db.Column(db.String(20), nullable=False, default='vacation')
    academic_year_id = db.Column(db.Integer, db.ForeignKey('academic_years.id'), nullable=False)
    description = db.Column(db.Text)


# Curriculum
class Program(SerializerMixin, db.Model):
    __tablename__ = 'programs'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    code = db.Column(db.String(20), nullable=False, unique=True)
    description = db.Column(db.Text)
    duration = db.Column(db.Integer)  # Duration in years


class Course(SerializerMixin, db.Model):
    __tablename__ = 'courses'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    code = db.Column(db.String(20), nullable=False, unique=True)
    description = db.Column(db.Text)
    credits = db.Column(db.Integer, nullable=False, default=1)
    program_id = db.Column(db.Integer, db.ForeignKey('programs.id'))
    instructor_id = db.Column(db.Integer, db.ForeignKey('teachers.id'))
    capacity = db.Column(db.Integer, nullable=False, default=20)


# People
class Teacher(SerializerMixin, db.Model):
    __tablename__ = 'teachers'

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), nullable=False, unique=True)
    phone = db.Column(db.String(30))
    specialty = db.Column(db.String(100))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"


class Student(SerializerMixin, db.Model):
    __tablename__ = 'students'

    STATUSES = ('active', 'inactive', 'graduated', 'suspended')

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.String(20), nullable=False, unique=True)  # School issued number
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120))
    phone = db.Column(db.String(30))
    date_of_birth = db.Column(db.Date)
    gender = db.Column(db.String(10))
    address = db.Column(db.String(255))
    program_id = db.Column(db.Integer, db.ForeignKey('programs.id'))
    student_group_id = db.Column(db.Integer, db.ForeignKey('student_groups.id'))
    enrollment_year = db.Column(db.Integer)
    status = db.Column(db.String(20), nullable=False, default='active')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    guardian_links = db.relationship('StudentGuardian', backref='student', cascade='all, delete-orphan')

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"


class Guardian(SerializerMixin, db.Model):
    __tablename__ = 'guardians'

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    relationship = db.Column(db.String(50), nullable=False)  # parent, guardian, grandparent, ...
    email = db.Column(db.String(120))
    phone = db.Column(db.String(30))
    address = db.Column(db.String(255))
    occupation = db.Column(db.String(100))
    is_emergency_contact = db.Column(db.Boolean, default=False)
    emergency_contact_name = db.Column(db.String(200))
    emergency_contact_phone = db.Column(db.String(30))
    emergency_contact_relation = db.Column(db.String(50))
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    student_links = db.relationship('StudentGuardian', backref='guardian', cascade='all, delete-orphan')

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"


class StudentGuardian(SerializerMixin, db.Model):
    __tablename__ = 'student_guardians'

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False)
    guardian_id = db.Column(db.Integer, db.ForeignKey('guardians.id'), nullable=False)
    is_primary = db.Column(db.Boolean, default=False)

    __table_args__ = (db.UniqueConstraint('student_id', 'guardian_id', name='unique_student_guardian'),)


# Classes and enrollment
class StudentGroup(SerializerMixin, db.Model):
    __tablename__ = 'student_groups'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    academic_year_id = db.Column(db.Integer, db.ForeignKey('academic_years.id'))
    program_id = db.Column(db.Integer, db.ForeignKey('programs.id'))
    instructor_id = db.Column(db.Integer, db.ForeignKey('teachers.id'))
    capacity = db.Column(db.Integer, nullable=False, default=25)
    location = db.Column(db.String(100))
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, default=True)
    start_date = db.Column(db.Date)
    end_date = db.Column(db.Date)

    students = db.relationship('Student', backref='student_group', lazy='dynamic')

    def student_count(self):
        return self.students.count()

    def is_full(self):
        return self.student_count() >= self.capacity

    def to_dict(self):
        data = super().to_dict()
        data['studentCount'] = self.student_count()
        return data


class Enrollment(SerializerMixin, db.Model):
    __tablename__ = 'enrollments'

    STATUSES = ('active', 'completed', 'withdrawn', 'pending')

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False)
    course_id = db.Column(db.Integer, db.ForeignKey('courses.id'), nullable=False)
    enrollment_date = db.Column(db.DateTime, default=datetime.utcnow)
    status = db.Column(db.String(20), nullable=False, default='active')
    grade = db.Column(db.String(10))
    final_score = db.Column(db.Integer)


# Facilities
class Room(SerializerMixin, db.Model):
    __tablename__ = 'rooms'

    STATUSES = ('available', 'occupied', 'reserved', 'maintenance')

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    capacity = db.Column(db.Integer, nullable=False)
    location = db.Column(db.String(100), nullable=False)
    status = db.Column(db.String(20), nullable=False, default='available')
    current_use = db.Column(db.String(200))
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# Accounts
class UserAccount(SerializerMixin, db.Model):
    __tablename__ = 'user_accounts'

    ROLES = ('admin', 'secretariat', 'teacher', 'guardian', 'student')
    PERSON_ROLES = ('teacher', 'guardian', 'student')

    __json_exclude__ = ('password_hash',)

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), nullable=False, unique=True)
    password_hash = db.Column(db.String(128), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='student')
    is_active = db.Column(db.Boolean, default=True)
    person_id = db.Column(db.Integer)  # Student, teacher or guardian id depending on role
    last_login = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def person(self):
        """Return the linked student, teacher or guardian record, if any"""
        model = PERSON_MODELS.get(self.role)
        if model is None or self.person_id is None:
            return None
        return db.session.get(model, self.person_id)

    def display_name(self):
        person = self.person()
        if person is not None:
            return person.full_name
        return self.email

    def to_dict(self):
        data = super().to_dict()
        person = self.person()
        data['firstName'] = person.first_name if person else None
        data['lastName'] = person.last_name if person else None
        data['personType'] = self.role if person else None
        return data


PERSON_MODELS = {
    'student': Student,
    'teacher': Teacher,
    'guardian': Guardian,
}


# Messaging
class Message(SerializerMixin, db.Model):
    __tablename__ = 'messages'

    id = db.Column(db.Integer, primary_key=True)
    sender_id = db.Column(db.Integer, nullable=False)
    sender_role = db.Column(db.String(20), nullable=False)
    receiver_id = db.Column(db.Integer, nullable=False)
    receiver_role = db.Column(db.String(20), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False)
    sent_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    is_read = db.Column(db.Boolean, default=False, nullable=False)
    read_at = db.Column(db.DateTime)
    parent_message_id = db.Column(db.Integer, db.ForeignKey('messages.id'))
    attachment_url = db.Column(db.String(500))

    parent = db.relationship('Message', remote_side=[id])

    def mark_read(self):
        """One-way unread -> read transition; returns True only when the state changed"""
        if self.is_read:
            return False
        self.is_read = True
        self.read_at = datetime.utcnow()
        return True

    def is_addressed_to(self, account_id, role):
        return self.receiver_id == account_id and self.receiver_role == role

    def is_sent_by(self, account_id, role):
        return self.sender_id == account_id and self.sender_role == role


class Communication(SerializerMixin, db.Model):
    __tablename__ = 'communications'

    TYPES = ('email', 'sms', 'notification', 'announcement')
    STATUSES = ('draft', 'sent', 'scheduled', 'failed')
    RECIPIENT_TYPES = ('students', 'guardians', 'teachers', 'all')
    PRIORITIES = ('low', 'medium', 'high')

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(20), nullable=False, default='email')
    status = db.Column(db.String(20), nullable=False, default='draft')
    recipient_type = db.Column(db.String(20), nullable=False, default='students')
    recipient_count = db.Column(db.Integer, default=0)
    priority = db.Column(db.String(10), nullable=False, default='medium')
    scheduled_date = db.Column(db.DateTime)
    sent_date = db.Column(db.DateTime)
    created_by = db.Column(db.String(120), nullable=False, default='')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


# Results
class AttendanceRecord(SerializerMixin, db.Model):
    __tablename__ = 'attendance'

    STATUSES = ('present', 'absent', 'late', 'excused')

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False)
    course_id = db.Column(db.Integer, db.ForeignKey('courses.id'))
    date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(10), nullable=False)
    notes = db.Column(db.Text)


class Grade(SerializerMixin, db.Model):
    __tablename__ = 'grades'

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False)
    program_id = db.Column(db.Integer, db.ForeignKey('programs.id'), nullable=False)  # Subject
    grade_type = db.Column(db.String(30), nullable=False)  # test/toets, taak/opdracht, huiswerk
    score = db.Column(db.Float, nullable=False)
    max_score = db.Column(db.Float, nullable=False, default=10.0)
    weight = db.Column(db.Float, nullable=False, default=1.0)
    date = db.Column(db.Date, nullable=False)
    notes = db.Column(db.Text)

    program = db.relationship('Program')

    def to_dict(self):
        data = super().to_dict()
        data['programName'] = self.program.name if self.program else None
        return data


class ReportTemplate(SerializerMixin, db.Model):
    __tablename__ = 'report_templates'

    REPORT_TYPES = ('class', 'individual')

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    description = db.Column(db.Text)
    report_type = db.Column(db.String(20), nullable=False, default='class')
    school_name = db.Column(db.String(200))
    include_attendance = db.Column(db.Boolean, default=True)
    include_behavior = db.Column(db.Boolean, default=True)
    include_comments = db.Column(db.Boolean, default=True)
    is_default = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


# Settings
class SchoolSetting(db.Model):
    __tablename__ = 'school_settings'

    id = db.Column(db.Integer, primary_key=True)
    section = db.Column(db.String(30), nullable=False)
    key = db.Column(db.String(50), nullable=False)
    value = db.Column(db.Text, nullable=False)  # JSON encoded
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (db.UniqueConstraint('section', 'key', name='unique_setting_key'),)

    def get_value(self):
        return json.loads(self.value)

    def set_value(self, value):
        self.value = json.dumps(value)
