import logging
from types import SimpleNamespace

from report_pdf import (
    PAGE_MARGIN, AttendanceBox, GradeTable, Header, PdfRenderer, ReportDocument, TextBox, build_document, latin1,
    render_reports, student_pages,
)


def make_report(first_name='Yusuf', last_name='Bakker', grades=None, comments=''):
    return {
        'student': {'firstName': first_name, 'lastName': last_name, 'studentId': 'ST0001',
                    'className': '3B', 'academicYear': '2024-2025'},
        'attendance': {'total': 3, 'present': 2, 'absent': 1, 'late': 0, 'percentage': 67},
        'grades': grades or {},
        'behavior': {'studentId': 1, 'grade': 7, 'comments': ''},
        'generalComments': comments,
    }


def subject(average):
    return {'testAverage': average, 'taskAverage': None, 'homeworkAverage': None,
            'average': average, 'comment': 'Goed'}


def test_two_pages_per_student():
    document = build_document([make_report(), make_report('Aisha', 'Yilmaz')], 'myMadrassa')

    pdf = PdfRenderer().build(document)

    assert len(document.pages) == 4
    assert pdf.page_no() == 4


def test_render_returns_pdf_bytes():
    data = render_reports([make_report(grades={'Koran': subject(8.2), 'Arabisch': subject(5.1)})], 'myMadrassa')

    assert isinstance(data, bytes)
    assert data.startswith(b'%PDF')


class RecordingRenderer(PdfRenderer):
    """Keeps every placed block with its page and position"""

    def __init__(self):
        self.placed = []

    def place(self, pdf, block, y):
        self.placed.append((pdf.page_no(), y, block.height(pdf), block))
        super().place(pdf, block, y)


def assert_within_pages(pdf, placed):
    bottom = pdf.h - PAGE_MARGIN
    for page, y, height, block in placed:
        assert y + height <= bottom, f"{type(block).__name__} on page {page} ends at {y + height}"


def test_long_text_box_flows_onto_next_page():
    long_text = '\n'.join(f"Regel {number}" for number in range(60))
    document = ReportDocument().add_page(Header('myMadrassa'), TextBox('OPMERKINGEN', long_text))
    renderer = RecordingRenderer()

    pdf = renderer.build(document)

    assert pdf.page_no() == 2
    assert_within_pages(pdf, renderer.placed)
    boxes = [block for _, _, _, block in renderer.placed if isinstance(block, TextBox)]
    assert len(boxes) == 2
    assert boxes[1].title == 'OPMERKINGEN (VERVOLG)'
    drawn = [line for box in boxes for line in box.lines(pdf)]
    assert drawn == [f"Regel {number}" for number in range(60)]


def test_long_grade_table_repeats_on_next_page():
    subjects = {f"Vak {number:02d}": subject(7.0) for number in range(40)}
    document = ReportDocument().add_page(Header('myMadrassa'), GradeTable(subjects))
    renderer = RecordingRenderer()

    pdf = renderer.build(document)

    assert pdf.page_no() >= 2
    assert_within_pages(pdf, renderer.placed)
    tables = [block for _, _, _, block in renderer.placed if isinstance(block, GradeTable)]
    assert len(tables) >= 2
    assert [name for table in tables for name in table.subjects] == list(subjects)


def test_small_block_moves_whole_to_next_page():
    filler = TextBox('VULLING', '\n'.join('x' for _ in range(34)))
    document = ReportDocument().add_page(filler, Header('myMadrassa'))
    renderer = RecordingRenderer()

    pdf = renderer.build(document)

    assert pdf.page_no() == 2
    assert renderer.placed[-1][:2] == (2, PAGE_MARGIN)
    assert_within_pages(pdf, renderer.placed)


def test_template_flags_drop_sections():
    template = SimpleNamespace(include_attendance=False, include_behavior=False, include_comments=False)

    first, second = student_pages(make_report(), 'myMadrassa', template)

    assert not any(isinstance(block, TextBox) for block in first)
    assert not any(isinstance(block, (TextBox, AttendanceBox)) for block in second)
    assert any(isinstance(block, GradeTable) for block in first)


def test_attendance_box_lists_counts():
    box = AttendanceBox({'total': 8, 'present': 1, 'absent': 7, 'late': 0, 'percentage': 13})

    assert 'Aanwezigheidspercentage: 13%' in box.text
    assert 'Aantal keer afwezig: 7' in box.text


def test_latin1_replaces_unsupported_characters():
    assert latin1('Één') == 'Één'
    assert latin1('مدرسة') == '?????'


def test_latin1_warns_when_text_is_replaced(caplog):
    with caplog.at_level(logging.WARNING, logger='report_pdf'):
        latin1('Één')
        assert not caplog.records

        latin1('Fatima مدرسة')

    assert len(caplog.records) == 1
    assert caplog.records[0].levelname == 'WARNING'
    assert 'Fatima' in caplog.records[0].getMessage()
