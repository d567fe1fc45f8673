"""
WTForms validation for the JSON API.

Forms are fed from the decoded JSON body instead of request.form; field names
are the camelCase keys the web client sends, and ``apply_to`` copies the
validated values onto the snake_case model attributes.
"""
from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict
from wtforms import BooleanField, DateField, DateTimeField, FloatField, IntegerField, StringField
from wtforms.validators import AnyOf, DataRequired, Email, Length, NumberRange, Optional, StopValidation

from exceptions import ValidationError
from models import (
    AttendanceRecord, Communication, Enrollment, Holiday, ReportTemplate, Room, Student, UserAccount,
    snake_case,
)

DATETIME_FORMATS = ['%Y-%m-%dT%H:%M:%S.%f', '%Y-%m-%dT%H:%M:%S', '%Y-%m-%dT%H:%M', '%Y-%m-%d %H:%M:%S', '%Y-%m-%d']


class Present:
    """Like DataRequired, but lets falsy numbers such as 0 through"""

    def __init__(self, message=None):
        self.message = message

    def __call__(self, form, field):
        if field.data is None or (isinstance(field.data, str) and not field.data.strip()):
            field.errors[:] = []
            raise StopValidation(self.message or 'Dit veld is verplicht.')


def _formdata(payload):
    """Flatten a JSON object into the string values a browser form would post"""
    data = MultiDict()
    for key, value in payload.items():
        if value is None:
            value = ''
        elif isinstance(value, bool):
            value = 'true' if value else 'false'
        elif not isinstance(value, str):
            value = str(value)
        data.add(key, value)
    return data


class ApiForm(FlaskForm):
    class Meta:
        # CSRFProtect already guards the whole request
        csrf = False

    @classmethod
    def from_payload(cls, payload, existing=None):
        """Build a form from a JSON body; for updates the existing record is overlaid with the payload"""
        if not isinstance(payload, dict):
            raise ValidationError('Ongeldige gegevens: JSON object verwacht.')
        merged = {}
        if existing is not None:
            merged.update(existing.to_dict())
        merged.update(payload)
        return cls(formdata=_formdata(merged))

    def validate_or_raise(self):
        if not self.validate():
            raise ValidationError('Validatiefout', errors=self.error_list())
        return self

    def error_list(self):
        errors = []
        for name, messages in self.errors.items():
            for message in messages:
                errors.append({'path': name, 'message': message})
        return errors

    def apply_to(self, record, only=None):
        """Copy validated field values onto ``record``; empty strings become NULL"""
        for field in self:
            if only is not None and field.name not in only:
                continue
            value = field.data
            if isinstance(value, str):
                value = value.strip() or None
            setattr(record, snake_case(field.name), value)
        return record


class AcademicYearForm(ApiForm):
    name = StringField(validators=[DataRequired('Naam is verplicht'), Length(max=50)])
    startDate = DateField(validators=[DataRequired('Startdatum is verplicht')])
    endDate = DateField(validators=[DataRequired('Einddatum is verplicht')])
    registrationStartDate = DateField(validators=[Optional()])
    registrationEndDate = DateField(validators=[Optional()])
    finalReportDate = DateField(validators=[Optional()])
    description = StringField(validators=[Optional()])
    isActive = BooleanField()

    def validate_endDate(self, field):
        if self.startDate.data and field.data and field.data < self.startDate.data:
            raise StopValidation('Einddatum moet na de startdatum liggen')

    def validate_registrationEndDate(self, field):
        start = self.registrationStartDate.data
        if start and field.data and field.data < start:
            raise StopValidation('Einde inschrijving moet na het begin liggen')


class HolidayForm(ApiForm):
    name = StringField(validators=[DataRequired('Naam is verplicht'), Length(max=100)])
    startDate = DateField(validators=[DataRequired()])
    endDate = DateField(validators=[DataRequired()])
    type = StringField(validators=[DataRequired(), AnyOf(Holiday.TYPES)], default='vacation')
    academicYearId = IntegerField(validators=[DataRequired('Schooljaar is verplicht')])
    description = StringField(validators=[Optional()])

    def validate_endDate(self, field):
        if self.startDate.data and field.data and field.data < self.startDate.data:
            raise StopValidation('Einddatum moet na de startdatum liggen')


class ProgramForm(ApiForm):
    name = StringField(validators=[DataRequired(), Length(min=3, message='Program name is required')])
    code = StringField(validators=[DataRequired(), Length(min=2, max=20, message='Program code is required')])
    description = StringField(validators=[Optional()])
    duration = IntegerField(validators=[Optional(), NumberRange(min=1, message='Duration must be at least 1 year')])


class CourseForm(ApiForm):
    name = StringField(validators=[DataRequired(), Length(min=3, message='Course name is required')])
    code = StringField(validators=[DataRequired(), Length(min=2, max=20, message='Course code is required')])
    description = StringField(validators=[Optional()])
    credits = IntegerField(validators=[DataRequired(), NumberRange(min=1, message='Credits must be at least 1')], default=1)
    programId = IntegerField(validators=[Optional()])
    instructorId = IntegerField(validators=[Optional()])
    capacity = IntegerField(validators=[DataRequired(), NumberRange(min=1, message='Capacity must be at least 1')], default=20)


class TeacherForm(ApiForm):
    firstName = StringField(validators=[DataRequired('Voornaam is verplicht'), Length(max=100)])
    lastName = StringField(validators=[DataRequired('Achternaam is verplicht'), Length(max=100)])
    email = StringField(validators=[DataRequired(), Email('Ongeldig e-mailadres')])
    phone = StringField(validators=[Optional(), Length(max=30)])
    specialty = StringField(validators=[Optional(), Length(max=100)])
    isActive = BooleanField()


class StudentForm(ApiForm):
    studentId = StringField(validators=[DataRequired('Studentnummer is verplicht'), Length(max=20)])
    firstName = StringField(validators=[DataRequired('Voornaam is verplicht'), Length(min=2, max=100)])
    lastName = StringField(validators=[DataRequired('Achternaam is verplicht'), Length(min=2, max=100)])
    email = StringField(validators=[Optional(), Email('Ongeldig e-mailadres')])
    phone = StringField(validators=[Optional(), Length(max=30)])
    dateOfBirth = DateField(validators=[Optional()])
    gender = StringField(validators=[Optional(), AnyOf(('male', 'female', 'man', 'vrouw'))])
    address = StringField(validators=[Optional(), Length(max=255)])
    programId = IntegerField(validators=[Optional()])
    studentGroupId = IntegerField(validators=[Optional()])
    enrollmentYear = IntegerField(validators=[Optional(), NumberRange(min=1900, max=2100)])
    status = StringField(validators=[DataRequired(), AnyOf(Student.STATUSES)], default='active')


class GuardianForm(ApiForm):
    firstName = StringField(validators=[DataRequired('Voornaam is verplicht'), Length(max=100)])
    lastName = StringField(validators=[DataRequired('Achternaam is verplicht'), Length(max=100)])
    relationship = StringField(validators=[DataRequired('Relatie is verplicht'), Length(max=50)])
    email = StringField(validators=[Optional(), Email('Ongeldig e-mailadres')])
    phone = StringField(validators=[Optional(), Length(max=30)])
    address = StringField(validators=[Optional(), Length(max=255)])
    occupation = StringField(validators=[Optional(), Length(max=100)])
    isEmergencyContact = BooleanField()
    emergencyContactName = StringField(validators=[Optional(), Length(max=200)])
    emergencyContactPhone = StringField(validators=[Optional(), Length(max=30)])
    emergencyContactRelation = StringField(validators=[Optional(), Length(max=50)])
    notes = StringField(validators=[Optional()])


class StudentGroupForm(ApiForm):
    name = StringField(validators=[DataRequired('Klasnaam is verplicht'), Length(max=100)])
    academicYearId = IntegerField(validators=[Optional()])
    programId = IntegerField(validators=[Optional()])
    instructorId = IntegerField(validators=[Optional()])
    capacity = IntegerField(validators=[DataRequired(), NumberRange(min=1)], default=25)
    location = StringField(validators=[Optional(), Length(max=100)])
    description = StringField(validators=[Optional()])
    isActive = BooleanField()
    startDate = DateField(validators=[Optional()])
    endDate = DateField(validators=[Optional()])

    def validate_endDate(self, field):
        if self.startDate.data and field.data and field.data < self.startDate.data:
            raise StopValidation('Einddatum moet na de startdatum liggen')


class EnrollmentForm(ApiForm):
    studentId = IntegerField(validators=[DataRequired()])
    courseId = IntegerField(validators=[DataRequired()])
    status = StringField(validators=[DataRequired(), AnyOf(Enrollment.STATUSES)], default='active')
    grade = StringField(validators=[Optional(), Length(max=10)])
    finalScore = IntegerField(validators=[Optional(), NumberRange(min=0, max=100)])


class RoomForm(ApiForm):
    name = StringField(validators=[DataRequired('Naam is verplicht'), Length(max=100)])
    capacity = IntegerField(validators=[DataRequired('Capaciteit is verplicht'), NumberRange(min=1)])
    location = StringField(validators=[DataRequired('Locatie is verplicht'), Length(max=100)])
    status = StringField(validators=[DataRequired(), AnyOf(Room.STATUSES)], default='available')
    currentUse = StringField(validators=[Optional(), Length(max=200)])
    notes = StringField(validators=[Optional()])


class AttendanceForm(ApiForm):
    studentId = IntegerField(validators=[DataRequired()])
    courseId = IntegerField(validators=[Optional()])
    date = DateField(validators=[DataRequired()])
    status = StringField(validators=[DataRequired(), AnyOf(AttendanceRecord.STATUSES)])
    notes = StringField(validators=[Optional()])


class GradeForm(ApiForm):
    studentId = IntegerField(validators=[DataRequired()])
    programId = IntegerField(validators=[DataRequired()])
    gradeType = StringField(validators=[DataRequired('Assessment type is required'), Length(max=30)])
    score = FloatField(validators=[Present(), NumberRange(min=0, message='Score cannot be negative')])
    maxScore = FloatField(validators=[Present(), NumberRange(min=1, message='Maximum score must be at least 1')], default=10.0)
    weight = FloatField(validators=[Present(), NumberRange(min=0)], default=1.0)
    date = DateField(validators=[DataRequired()])
    notes = StringField(validators=[Optional()])

    def validate_score(self, field):
        if self.maxScore.data and field.data is not None and field.data > self.maxScore.data:
            raise StopValidation('Score kan niet hoger zijn dan de maximale score')


class ReportTemplateForm(ApiForm):
    name = StringField(validators=[DataRequired(), Length(max=100)])
    description = StringField(validators=[Optional()])
    reportType = StringField(validators=[DataRequired(), AnyOf(ReportTemplate.REPORT_TYPES)], default='class')
    schoolName = StringField(validators=[Optional(), Length(max=200)])
    includeAttendance = BooleanField()
    includeBehavior = BooleanField()
    includeComments = BooleanField()
    isDefault = BooleanField()


class AccountForm(ApiForm):
    email = StringField(validators=[DataRequired('E-mail is verplicht'), Email('Ongeldig e-mailadres')])
    password = StringField(validators=[Optional(), Length(min=8, message='Wachtwoord moet minimaal 8 tekens zijn')])
    role = StringField(validators=[DataRequired(), AnyOf(UserAccount.ROLES)])
    personId = IntegerField(validators=[Optional()])
    isActive = BooleanField()


class MessageForm(ApiForm):
    receiverId = IntegerField(validators=[DataRequired('Ontvanger is verplicht')])
    receiverRole = StringField(validators=[DataRequired('Ontvanger is verplicht'), AnyOf(UserAccount.ROLES)])
    title = StringField(validators=[DataRequired('Onderwerp is verplicht'), Length(max=200)])
    content = StringField(validators=[DataRequired('Bericht is verplicht')])
    parentMessageId = IntegerField(validators=[Optional()])
    attachmentUrl = StringField(validators=[Optional(), Length(max=500)])


class CommunicationForm(ApiForm):
    title = StringField(validators=[DataRequired('Titel is verplicht'), Length(max=200)])
    message = StringField(validators=[DataRequired('Bericht is verplicht')])
    type = StringField(validators=[DataRequired(), AnyOf(Communication.TYPES)], default='email')
    status = StringField(validators=[DataRequired(), AnyOf(Communication.STATUSES)], default='draft')
    recipientType = StringField(validators=[DataRequired(), AnyOf(Communication.RECIPIENT_TYPES)], default='students')
    priority = StringField(validators=[DataRequired(), AnyOf(Communication.PRIORITIES)], default='medium')
    scheduledDate = DateTimeField(format=DATETIME_FORMATS, validators=[Optional()])


class LoginForm(ApiForm):
    email = StringField(validators=[DataRequired('Email en wachtwoord zijn verplicht')])
    password = StringField(validators=[DataRequired('Email en wachtwoord zijn verplicht')])
