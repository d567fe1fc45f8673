from datetime import date
from types import SimpleNamespace

import pytest

from models import AcademicYear, AttendanceRecord, Grade, db
from report_pdf import AttendanceBox, GradeTable, Header, TextBox, build_document
from reports import (
    NO_DATA_MESSAGE, attendance_summary, bucket_for, grade_buckets, performance_comment, round_half_up, score_band,
    weighted_average,
)


def records(*statuses):
    return [SimpleNamespace(status=status) for status in statuses]


@pytest.mark.parametrize('statuses, expected', [
    (('present', 'present', 'absent'), 67),
    (('present',) + ('absent',) * 7, 13),
    (('present', 'late'), 50),
    ((), 0),
])
def test_attendance_percentage_rounds_half_up(statuses, expected):
    assert attendance_summary(records(*statuses))['percentage'] == expected


def test_attendance_counts():
    summary = attendance_summary(records('present', 'absent', 'late', 'late', 'excused'))

    assert summary == {'total': 5, 'present': 1, 'absent': 1, 'late': 2, 'percentage': 20}


def test_round_half_up():
    assert round_half_up(12.5) == 13
    assert round_half_up(66.666) == 67
    assert round_half_up(0.4) == 0


@pytest.mark.parametrize('grade_type, bucket', [
    ('Toets', 'tests'),
    ('test', 'tests'),
    ('taak', 'tasks'),
    ('Opdracht', 'tasks'),
    ('huiswerk', 'homework'),
    ('mondeling', 'tests'),
])
def test_bucket_for(grade_type, bucket):
    assert bucket_for(grade_type) == bucket


@pytest.mark.parametrize('averages, comment', [
    ((8.5, None), 'Uitstekend'),
    ((7.5, 6.5), 'Goed'),
    ((6.2,), 'Voldoende'),
    ((5.0, 4.0), 'Aandacht nodig'),
    ((None, None), 'Goed'),
])
def test_performance_comment(averages, comment):
    assert performance_comment(*averages) == comment


def test_score_band_thresholds():
    assert score_band(6.5) == 'green'
    assert score_band(6.4) == 'orange'
    assert score_band(5.5) == 'orange'
    assert score_band(5.4) == 'red'


def add_grade(student, program, grade_type, score, max_score=10.0, weight=1.0):
    grade = Grade(student_id=student.id, program_id=program.id, grade_type=grade_type, score=score,
                  max_score=max_score, weight=weight, date=date(2024, 11, 1))
    db.session.add(grade)
    db.session.commit()
    return grade


def test_grade_buckets_per_subject(make_student, program):
    student = make_student()
    grades = [
        add_grade(student, program, 'toets', 8),
        add_grade(student, program, 'toets', 16, max_score=20, weight=2),
        add_grade(student, program, 'taak', 6),
        add_grade(student, program, 'huiswerk', 9),
    ]

    summary = grade_buckets(grades)['Koran']

    assert len(summary['tests']) == 2
    assert summary['testAverage'] == pytest.approx(8.0)
    assert summary['taskAverage'] == pytest.approx(6.0)
    assert summary['homeworkAverage'] == pytest.approx(9.0)
    assert summary['average'] == pytest.approx((8 + 8 * 2 + 6 + 9) / 5)
    assert summary['comment'] == 'Goed'


def test_weighted_average_without_weight(make_student, program):
    student = make_student()

    assert weighted_average([add_grade(student, program, 'toets', 7, weight=0)]) == 0
    assert weighted_average([]) == 0


@pytest.fixture
def report_class(make_group, make_student, program):
    year = AcademicYear(name='2024-2025', start_date=date(2024, 9, 1), end_date=date(2025, 7, 15))
    db.session.add(year)
    db.session.commit()
    group = make_group('3B', academic_year_id=year.id)
    yusuf = make_student('Yusuf', 'Bakker', student_group_id=group.id)
    aisha = make_student('Aisha', 'Yilmaz', student_group_id=group.id)
    for day, status in ((1, 'present'), (2, 'present'), (3, 'absent')):
        db.session.add(AttendanceRecord(student_id=yusuf.id, date=date(2024, 11, day), status=status))
    db.session.commit()
    add_grade(yusuf, program, 'toets', 7.5)
    return SimpleNamespace(group=group, yusuf=yusuf, aisha=aisha)


def test_preview_for_class(login_as, report_class):
    teacher = login_as('teacher')
    yusuf_id = str(report_class.yusuf.id)

    response = teacher.post('/api/reports/preview', json={
        'reportType': 'class',
        'classId': report_class.group.id,
        'behavior': {yusuf_id: {'grade': 9, 'comments': 'Behulpzaam'}},
        'comments': {yusuf_id: 'Een goed jaar.'},
    })

    assert response.status_code == 200
    reports = response.get_json()
    assert [report['student']['firstName'] for report in reports] == ['Yusuf', 'Aisha']
    yusuf, aisha = reports
    assert yusuf['student']['className'] == '3B'
    assert yusuf['student']['academicYear'] == '2024-2025'
    assert yusuf['attendance']['percentage'] == 67
    assert yusuf['grades']['Koran']['testAverage'] == 7.5
    assert yusuf['behavior'] == {'studentId': report_class.yusuf.id, 'grade': 9, 'comments': 'Behulpzaam'}
    assert yusuf['generalComments'] == 'Een goed jaar.'
    assert aisha['attendance'] == {'total': 0, 'present': 0, 'absent': 0, 'late': 0, 'percentage': 0}
    assert aisha['grades'] == {}
    assert aisha['behavior']['grade'] == 7
    assert aisha['generalComments'] == ''


def test_preview_request_validation(admin_client):
    assert admin_client.post('/api/reports/preview', json={'reportType': 'class'}).status_code == 400
    assert admin_client.post('/api/reports/preview', json={'reportType': 'class', 'classId': 99}).status_code == 404
    assert admin_client.post('/api/reports/preview', json={'reportType': 'jaar'}).status_code == 400
    assert admin_client.post('/api/reports/preview', json={'reportType': 'individual'}).status_code == 400


def test_pdf_for_individual_student(admin_client, report_class):
    response = admin_client.post('/api/reports/pdf', json={
        'reportType': 'individual', 'studentId': report_class.yusuf.id,
    })

    assert response.status_code == 200
    assert response.mimetype == 'application/pdf'
    assert response.data.startswith(b'%PDF')
    disposition = response.headers['Content-Disposition']
    assert f"rapport_Bakker_Yusuf_{date.today().isoformat()}.pdf" in disposition


def test_pdf_for_class(admin_client, report_class):
    response = admin_client.post('/api/reports/pdf', json={'reportType': 'class', 'classId': report_class.group.id})

    assert response.status_code == 200
    assert 'rapport_klas_3B_' in response.headers['Content-Disposition']


def test_pdf_without_students_is_refused(admin_client, make_group):
    group = make_group('Leeg')

    class_response = admin_client.post('/api/reports/pdf', json={'reportType': 'class', 'classId': group.id})
    student_response = admin_client.post('/api/reports/pdf', json={'reportType': 'individual', 'studentId': 99})

    assert class_response.status_code == 400
    assert class_response.get_json()['message'] == NO_DATA_MESSAGE
    assert student_response.status_code == 400


def test_students_may_not_generate_reports(login_as, report_class):
    student = login_as('student')

    response = student.post('/api/reports/preview', json={'reportType': 'class', 'classId': report_class.group.id})

    assert response.status_code == 403


def test_only_one_default_template(admin_client):
    first = admin_client.post('/api/report-templates', json={'name': 'Standaard', 'isDefault': True}).get_json()
    second = admin_client.post('/api/report-templates', json={'name': 'Kort', 'isDefault': True}).get_json()

    templates = {template['name']: template for template in admin_client.get('/api/report-templates').get_json()}

    assert first['includeAttendance'] is True
    assert second['isDefault'] is True
    assert templates['Standaard']['isDefault'] is False
    assert templates['Kort']['isDefault'] is True


@pytest.fixture
def rendered(monkeypatch):
    """Captures what the PDF endpoint hands to the renderer"""
    calls = []

    def render(reports, school_name, template=None):
        calls.append(build_document(reports, school_name, template))
        return b'%PDF-1.3 test'

    monkeypatch.setattr('report_pdf.render_reports', render)
    return calls


def test_pdf_follows_selected_template(admin_client, report_class, rendered):
    template = admin_client.post('/api/report-templates', json={
        'name': 'Alleen cijfers', 'schoolName': 'Madrassa An-Noor',
        'includeAttendance': False, 'includeBehavior': False, 'includeComments': False,
    }).get_json()

    response = admin_client.post('/api/reports/pdf', json={
        'reportType': 'individual', 'studentId': report_class.yusuf.id, 'templateId': template['id'],
    })

    assert response.status_code == 200
    blocks = [block for page in rendered[0].pages for block in page]
    headers = [block for block in blocks if isinstance(block, Header)]
    assert headers and all(header.school_name == 'Madrassa An-Noor' for header in headers)
    assert not any(isinstance(block, (TextBox, AttendanceBox)) for block in blocks)
    assert any(isinstance(block, GradeTable) for block in blocks)


def test_pdf_uses_default_template(admin_client, report_class, rendered):
    admin_client.post('/api/report-templates', json={
        'name': 'Zonder gedrag', 'includeBehavior': False, 'isDefault': True,
    })

    admin_client.post('/api/reports/pdf', json={'reportType': 'class', 'classId': report_class.group.id})

    titles = [block.title for page in rendered[0].pages for block in page if isinstance(block, TextBox)]
    assert 'GEDRAGSBEOORDELING' not in titles
    assert 'AANWEZIGHEID' in titles


def test_pdf_with_unknown_template_is_404(admin_client, report_class, rendered):
    response = admin_client.post('/api/reports/pdf', json={
        'reportType': 'individual', 'studentId': report_class.yusuf.id, 'templateId': 999,
    })

    assert response.status_code == 404
    assert rendered == []
