"""
Declarative layout for the student report PDF.

A ``ReportDocument`` is a list of pages and each page a list of blocks. The
renderer stacks blocks top to bottom and starts a new page when the next
block does not fit, drawing everything through fpdf2.
"""
import logging
from datetime import date

from fpdf import FPDF

from reports import score_band

logger = logging.getLogger(__name__)

PAGE_MARGIN = 20
BLOCK_SPACING = 8
LINE_HEIGHT = 6

PRIMARY = (33, 107, 169)
TEXT = (64, 75, 105)
MUTED = (150, 150, 150)
CARD = (248, 249, 250)
HEADER_BAND = (233, 243, 250)
ROW_ALT = (250, 251, 252)
BORDER = (220, 226, 235)
BAND_COLOURS = {
    'green': (34, 139, 34),
    'orange': (255, 152, 0),
    'red': (220, 53, 69),
}


def latin1(text):
    """Core fonts only cover latin-1"""
    text = str(text)
    cleaned = text.encode('latin-1', 'replace').decode('latin-1')
    if cleaned != text:
        logger.warning("Report text contains characters outside latin-1, replaced with '?': %r", text)
    return cleaned


def wrap_lines(pdf, text, width):
    lines = []
    for paragraph in latin1(text).split('\n'):
        line = ''
        for word in paragraph.split(' '):
            candidate = f"{line} {word}".strip()
            if line and pdf.get_string_width(candidate) > width:
                lines.append(line)
                line = word
            else:
                line = candidate
        lines.append(line)
    return lines


def format_score(value):
    return '-' if value is None else f"{value:.1f}"


class Block:
    def height(self, pdf):
        raise NotImplementedError

    def draw(self, pdf, y):
        raise NotImplementedError

    def split(self, pdf, available):
        """Return ``(head, tail)`` where ``head`` fits in ``available``, or None if the block cannot be split"""
        return None


class Header(Block):
    def __init__(self, school_name, title='SCHOOLRAPPORT', subtitle=None):
        self.school_name = school_name
        self.title = title
        self.subtitle = subtitle

    def height(self, pdf):
        return 30

    def draw(self, pdf, y):
        width = pdf.w - 2 * PAGE_MARGIN
        pdf.set_fill_color(*HEADER_BAND)
        pdf.rect(PAGE_MARGIN, y, width, 26, style='F')
        pdf.set_fill_color(*PRIMARY)
        pdf.rect(PAGE_MARGIN, y, 3, 26, style='F')

        pdf.set_text_color(*PRIMARY)
        pdf.set_font('helvetica', 'B', 16)
        pdf.set_xy(PAGE_MARGIN + 8, y + 5)
        pdf.cell(width / 2, 10, latin1(self.school_name))
        pdf.set_xy(PAGE_MARGIN + width / 2, y + 5)
        pdf.cell(width / 2 - 5, 10, latin1(self.title), align='R')

        if self.subtitle:
            pdf.set_text_color(*TEXT)
            pdf.set_font('helvetica', '', 10)
            pdf.set_xy(PAGE_MARGIN + width / 2, y + 15)
            pdf.cell(width / 2 - 5, 6, latin1(self.subtitle), align='R')


class InfoCard(Block):
    """Label/value pairs laid out in two columns"""

    def __init__(self, rows, title=None):
        self.rows = list(rows)
        self.title = title

    def _row_count(self):
        return (len(self.rows) + 1) // 2

    def height(self, pdf):
        title = 10 if self.title else 0
        return title + self._row_count() * 8 + 8

    def draw(self, pdf, y):
        width = pdf.w - 2 * PAGE_MARGIN
        pdf.set_fill_color(*CARD)
        pdf.set_draw_color(*BORDER)
        pdf.rect(PAGE_MARGIN, y, width, self.height(pdf), style='DF')

        cursor = y + 4
        if self.title:
            pdf.set_text_color(*PRIMARY)
            pdf.set_font('helvetica', 'B', 11)
            pdf.set_xy(PAGE_MARGIN + 5, cursor)
            pdf.cell(width - 10, 8, latin1(self.title))
            cursor += 10

        pdf.set_text_color(*TEXT)
        pdf.set_font('helvetica', '', 10)
        for index, (label, value) in enumerate(self.rows):
            column = index % 2
            row = index // 2
            pdf.set_xy(PAGE_MARGIN + 5 + column * width / 2, cursor + row * 8)
            pdf.cell(width / 2 - 10, 8, latin1(f"{label}: {value if value not in (None, '') else '-'}"))


class GradeTable(Block):
    HEADINGS = ('VAK', 'TESTEN', 'TAKEN', 'HUISWERK', 'GEMIDDELD', 'BEOORDELING')
    ROW_HEIGHT = 9

    def __init__(self, subjects):
        # subject name -> grade bucket summary
        self.subjects = subjects

    def height(self, pdf):
        rows = max(len(self.subjects), 1)
        return self.ROW_HEIGHT * (rows + 1)

    def split(self, pdf, available):
        # The heading row is repeated on the continuation
        rows = int(available // self.ROW_HEIGHT) - 1
        if rows < 1 or rows >= len(self.subjects):
            return None
        items = list(self.subjects.items())
        return GradeTable(dict(items[:rows])), GradeTable(dict(items[rows:]))

    def _widths(self, pdf):
        width = pdf.w - 2 * PAGE_MARGIN
        return [width * share for share in (0.28, 0.12, 0.12, 0.14, 0.14, 0.20)]

    def draw(self, pdf, y):
        widths = self._widths(pdf)
        pdf.set_fill_color(*PRIMARY)
        pdf.set_text_color(255, 255, 255)
        pdf.set_font('helvetica', 'B', 9)
        pdf.set_xy(PAGE_MARGIN, y)
        for heading, width in zip(self.HEADINGS, widths):
            pdf.cell(width, self.ROW_HEIGHT, heading, border=0, align='C', fill=True)

        pdf.set_font('helvetica', '', 9)
        pdf.set_draw_color(*BORDER)
        row_y = y + self.ROW_HEIGHT
        if not self.subjects:
            pdf.set_text_color(*MUTED)
            pdf.set_xy(PAGE_MARGIN, row_y)
            pdf.cell(sum(widths), self.ROW_HEIGHT, 'Nog geen cijfers beschikbaar', border=1, align='C')
            return

        for index, (subject, summary) in enumerate(self.subjects.items()):
            pdf.set_xy(PAGE_MARGIN, row_y)
            fill = index % 2 == 0
            pdf.set_fill_color(*ROW_ALT)
            pdf.set_text_color(*TEXT)
            pdf.cell(widths[0], self.ROW_HEIGHT, latin1(subject), border=1, fill=fill)
            averages = (summary['testAverage'], summary['taskAverage'],
                        summary['homeworkAverage'], summary['average'])
            for value, width in zip(averages, widths[1:5]):
                if value is None:
                    pdf.set_text_color(*TEXT)
                else:
                    pdf.set_text_color(*BAND_COLOURS[score_band(value)])
                pdf.cell(width, self.ROW_HEIGHT, format_score(value), border=1, align='C', fill=fill)
            pdf.set_text_color(*TEXT)
            pdf.cell(widths[5], self.ROW_HEIGHT, summary['comment'], border=1, align='C', fill=fill)
            row_y += self.ROW_HEIGHT


class TextBox(Block):
    def __init__(self, title, text, placeholder=''):
        self.title = title
        self.text = text or placeholder

    def lines(self, pdf):
        pdf.set_font('helvetica', '', 10)
        return wrap_lines(pdf, self.text, pdf.w - 2 * PAGE_MARGIN - 10)

    def height(self, pdf):
        return 18 + len(self.lines(pdf)) * LINE_HEIGHT

    def split(self, pdf, available):
        lines = self.lines(pdf)
        count = int((available - 18) // LINE_HEIGHT)
        if count < 1 or count >= len(lines):
            return None
        return (TextBox(self.title, '\n'.join(lines[:count])),
                TextBox(f"{self.title} (VERVOLG)", '\n'.join(lines[count:])))

    def draw(self, pdf, y):
        width = pdf.w - 2 * PAGE_MARGIN
        height = self.height(pdf)
        pdf.set_fill_color(*CARD)
        pdf.set_draw_color(*BORDER)
        pdf.rect(PAGE_MARGIN, y, width, height, style='DF')

        pdf.set_text_color(*PRIMARY)
        pdf.set_font('helvetica', 'B', 11)
        pdf.set_xy(PAGE_MARGIN + 5, y + 4)
        pdf.cell(width - 10, 8, latin1(self.title))

        cursor = y + 13
        lines = self.lines(pdf)
        pdf.set_text_color(*TEXT)
        for line in lines:
            pdf.set_xy(PAGE_MARGIN + 5, cursor)
            pdf.cell(width - 10, LINE_HEIGHT, line)
            cursor += LINE_HEIGHT


class AttendanceBox(TextBox):
    def __init__(self, summary, comments=''):
        lines = [
            f"Aantal lessen geregistreerd: {summary['total']}",
            f"Aanwezig: {summary['present']} keer",
            f"Aantal keer afwezig: {summary['absent']}",
            f"Aantal keer te laat: {summary['late']}",
            f"Aanwezigheidspercentage: {summary['percentage']}%",
        ]
        if comments:
            lines.append(comments)
        super().__init__('AANWEZIGHEID', '\n'.join(lines))


class Signatures(Block):
    def height(self, pdf):
        return 30

    def draw(self, pdf, y):
        width = pdf.w - 2 * PAGE_MARGIN
        pdf.set_text_color(*TEXT)
        pdf.set_font('helvetica', '', 10)
        for column, label in enumerate(('Handtekening ouder/voogd:', 'Handtekening school:')):
            x = PAGE_MARGIN + column * width / 2
            pdf.set_xy(x, y)
            pdf.cell(width / 2 - 5, 8, label)
            pdf.line(x, y + 18, x + width / 2 - 15, y + 18)
            pdf.set_xy(x, y + 20)
            pdf.cell(width / 2 - 5, 8, 'Datum: ________________')


class ReportDocument:
    def __init__(self, pages=None):
        self.pages = list(pages or [])

    def add_page(self, *blocks):
        self.pages.append(list(blocks))
        return self


class ReportPDF(FPDF):
    def footer(self):
        self.set_y(-15)
        self.set_font('helvetica', 'I', 8)
        self.set_text_color(*MUTED)
        self.cell(0, 10, f"Pagina {self.page_no()} van {{nb}}", align='C')


class PdfRenderer:
    def build(self, document):
        pdf = ReportPDF(format='A4')
        pdf.set_auto_page_break(False)
        pdf.set_margins(PAGE_MARGIN, PAGE_MARGIN, PAGE_MARGIN)
        bottom = pdf.h - PAGE_MARGIN - 10

        for blocks in document.pages:
            pdf.add_page()
            y = PAGE_MARGIN
            pending = list(blocks)
            while pending:
                block = pending.pop(0)
                height = block.height(pdf)
                if y + height > bottom:
                    parts = block.split(pdf, bottom - y)
                    if parts is not None:
                        head, tail = parts
                        self.place(pdf, head, y)
                        pending.insert(0, tail)
                        pdf.add_page()
                        y = PAGE_MARGIN
                        continue
                    if y > PAGE_MARGIN:
                        pending.insert(0, block)
                        pdf.add_page()
                        y = PAGE_MARGIN
                        continue
                self.place(pdf, block, y)
                y += height + BLOCK_SPACING
        return pdf

    def place(self, pdf, block, y):
        block.draw(pdf, y)

    def render(self, document):
        return bytes(self.build(document).output())


def student_pages(report, school_name, template=None):
    """Two pages per student: results first, then behaviour and attendance"""
    student = report['student']
    year = f"Schooljaar {student.get('academicYear')}" if student.get('academicYear') else None
    include_attendance = template is None or template.include_attendance
    include_behavior = template is None or template.include_behavior
    include_comments = template is None or template.include_comments

    info = InfoCard([
        ('Leerling', f"{student['firstName']} {student['lastName']}"),
        ('Klas', student.get('className')),
        ('Leerlingnummer', student.get('studentId')),
        ('Datum', date.today().strftime('%d-%m-%Y')),
    ])
    first = [Header(school_name, subtitle=year), info, GradeTable(report['grades'])]
    if include_comments:
        first.append(TextBox('ALGEMENE OPMERKINGEN', report['generalComments'],
                             placeholder='Geen opmerkingen.'))

    second = [Header(school_name, subtitle=year)]
    if include_behavior:
        behavior = report['behavior']
        text = f"Gedragscijfer: {behavior['grade']}/10"
        if behavior['comments']:
            text += f"\n{behavior['comments']}"
        second.append(TextBox('GEDRAGSBEOORDELING', text))
    if include_attendance:
        second.append(AttendanceBox(report['attendance']))
    second.append(Signatures())
    return [first, second]


def build_document(reports, school_name, template=None):
    document = ReportDocument()
    for report in reports:
        for page in student_pages(report, school_name, template):
            document.add_page(*page)
    return document


def render_reports(reports, school_name, template=None):
    return PdfRenderer().render(build_document(reports, school_name, template))
