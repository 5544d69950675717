from __future__ import annotations  # Styled PDF rendering for interview summaries

import os
from datetime import datetime
from typing import Any, List, Optional, Tuple

from fpdf import FPDF
from fpdf.enums import XPos, YPos

from graph.summary import InterviewSummary

DEJAVU_SANS = "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"  # System font
DEJAVU_SANS_BOLD = "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"  # System font
DEJAVU_MONO = "/usr/share/fonts/truetype/dejavu/DejaVuSansMono.ttf"  # System font

ACCENT = (45, 115, 245)  # Palette accent
TEXT = (34, 34, 34)  # Primary text color
MUTED = (100, 100, 100)  # Secondary text color
RULE = (230, 230, 230)  # Divider color
SOFT_ACCENT_BG = (243, 248, 255)  # Highlight background


def _format_datetime(value: Optional[datetime]) -> str:  # Format timestamp for display
    if not value:
        return "-"
    return value.strftime("%d %b %Y, %I:%M %p").lstrip("0").replace(" 0", " ")


def _effective_width(pdf: FPDF) -> float:  # Compute effective page width
    return float(pdf.w) - float(pdf.l_margin) - float(pdf.r_margin)


def _score_value(value: Optional[float]) -> str:  # Format score on the 0-2 scale
    if value is None:
        return "N/A"
    return f"{value:.2f}/2.00"


def _section_title(pdf: "ReportPDF", title: str) -> None:  # Render styled section title
    pdf.set_text_color(*TEXT)
    pdf.set_x(pdf.l_margin)
    pdf.set_font(pdf._font_bold, "B", 13)
    pdf.cell(0, 9, title, new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.set_draw_color(*RULE)
    pdf.set_line_width(0.2)
    y = pdf.get_y()
    pdf.line(pdf.l_margin, y, pdf.l_margin + _effective_width(pdf), y)
    pdf.ln(2)


def _meta_block(pdf: "ReportPDF", rows: List[Tuple[str, str]]) -> None:  # Draw two-column metadata
    col = _effective_width(pdf) / 2.0
    line = 6
    for idx in range(0, len(rows), 2):
        left = rows[idx]
        right = rows[idx + 1] if idx + 1 < len(rows) else ("", "")
        pdf.set_x(pdf.l_margin)
        pdf.set_text_color(*MUTED)
        pdf.set_font(pdf._font_regular, "", 10)
        pdf.cell(col, line, left[0], new_x=XPos.RIGHT, new_y=YPos.TOP)
        pdf.cell(col, line, right[0], new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        pdf.set_x(pdf.l_margin)
        pdf.set_text_color(*TEXT)
        pdf.set_font(pdf._font_bold, "B", 11)
        pdf.cell(col, line, left[1], new_x=XPos.RIGHT, new_y=YPos.TOP)
        pdf.cell(col, line, right[1], new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.ln(2)


class ReportPDF(FPDF):  # PDF with custom header/footer styling
    def __init__(self, *args, accent: Tuple[int, int, int] = ACCENT, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.accent = accent
        self.header_title = "Interview Summary"
        self._font_regular = "Helvetica"
        self._font_bold = "Helvetica"
        self._font_mono = "Courier"
        self._supports_unicode = False

    def use_unicode_fonts(self) -> bool:  # Register DejaVu when the system ships it
        if not all(os.path.exists(path) for path in (DEJAVU_SANS, DEJAVU_SANS_BOLD, DEJAVU_MONO)):
            return False
        self.add_font("DejaVu", "", DEJAVU_SANS)
        self.add_font("DejaVu", "B", DEJAVU_SANS_BOLD)
        self.add_font("DejaVuMono", "", DEJAVU_MONO)
        self._font_regular = "DejaVu"
        self._font_bold = "DejaVu"
        self._font_mono = "DejaVuMono"
        self._supports_unicode = True
        return True

    def _prepare_text(self, text: Any) -> str:  # Sanitize text for non-unicode fonts
        value = "" if text is None else str(text)
        if self._supports_unicode:
            return value
        return value.replace("•", "-").encode("latin-1", "ignore").decode("latin-1")

    def cell(self, *args, **kwargs):  # Wrap base cell with text sanitisation
        args_list = list(args)
        if len(args_list) >= 3:
            args_list[2] = self._prepare_text(args_list[2])
        elif "text" in kwargs:
            kwargs["text"] = self._prepare_text(kwargs["text"])
        return super().cell(*args_list, **kwargs)

    def multi_cell(self, *args, **kwargs):  # Wrap base multi_cell with text sanitisation
        args_list = list(args)
        if len(args_list) >= 3:
            args_list[2] = self._prepare_text(args_list[2])
        elif "text" in kwargs:
            kwargs["text"] = self._prepare_text(kwargs["text"])
        return super().multi_cell(*args_list, **kwargs)

    def header(self) -> None:  # Render header banner
        usable = _effective_width(self)
        if self.page_no() == 1:
            self.set_font(self._font_bold, "B", 16)
            banner = 6 + 8 + 4
            self.set_fill_color(*self.accent)
            self.rect(0, 0, self.w, banner, style="F")
            self.set_text_color(255, 255, 255)
            self.set_xy(self.l_margin, 6)
            self.cell(usable, 8, self.header_title)
            self.set_text_color(*TEXT)
            self.set_y(banner + 4)
        else:
            self.set_text_color(80, 80, 80)
            self.set_xy(self.l_margin, 8)
            self.set_font(self._font_bold, "B", 12)
            self.cell(usable, 6, self.header_title)
            mark = self.get_y() + 6
            self.set_draw_color(*self.accent)
            self.set_line_width(0.4)
            self.line(self.l_margin, mark + 1, self.w - self.r_margin, mark + 1)
            self.set_text_color(*TEXT)
            self.set_y(mark + 5)

    def footer(self) -> None:  # Render footer with pagination
        self.set_y(-12)
        self.set_draw_color(*RULE)
        self.set_line_width(0.2)
        self.line(self.l_margin, self.get_y(), self.w - self.r_margin, self.get_y())
        self.set_text_color(120, 120, 120)
        self.set_font(self._font_regular, "", 9)
        self.cell(0, 10, f"Page {self.page_no()}/{{nb}}", align="R")


def _render_average(pdf: ReportPDF, average: Optional[float]) -> None:  # Highlight box for the mean score
    width = _effective_width(pdf)
    top = pdf.get_y()
    pdf.set_fill_color(*SOFT_ACCENT_BG)
    pdf.rect(pdf.l_margin, top, width, 16, style="F")
    pdf.set_xy(pdf.l_margin + 6, top + 5)
    pdf.set_text_color(*MUTED)
    pdf.set_font(pdf._font_regular, "", 10)
    pdf.cell(width / 2, 6, "Average Turn Score")
    pdf.set_text_color(*ACCENT)
    pdf.set_font(pdf._font_bold, "B", 14)
    pdf.cell(width / 2 - 12, 6, _score_value(average), align="R")
    pdf.set_xy(pdf.l_margin, top + 20)
    pdf.set_text_color(*TEXT)


def _render_buzzwords(pdf: ReportPDF, summary: InterviewSummary, limit: int = 20) -> None:  # Two-column term table
    width = _effective_width(pdf)
    pdf.set_font(pdf._font_regular, "", 10)
    if not summary.top_buzzwords:
        pdf.set_text_color(*MUTED)
        pdf.cell(width, 6, "No technical terms recorded.", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        pdf.set_text_color(*TEXT)
        pdf.ln(2)
        return
    for entry in summary.top_buzzwords[:limit]:
        pdf.set_x(pdf.l_margin)
        pdf.cell(width * 0.75, 6, entry.term, new_x=XPos.RIGHT, new_y=YPos.TOP)
        pdf.cell(width * 0.25, 6, str(entry.count), align="R", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.ln(2)


def render_summary_pdf(  # Build PDF payload for an interview summary
    summary: InterviewSummary,
    session_id: Optional[str] = None,
    *,
    generated_at: Optional[datetime] = None,
) -> bytes:
    pdf = ReportPDF()
    pdf.alias_nb_pages()
    pdf.use_unicode_fonts()
    pdf.header_title = f"Interview Summary - {session_id or summary.session_id}"
    pdf.set_margins(15, 22, 15)
    pdf.set_auto_page_break(auto=True, margin=15)
    pdf.add_page()

    _section_title(pdf, "Session Overview")
    coverage = summary.topic_coverage
    _meta_block(
        pdf,
        [
            ("Session", summary.session_id),
            ("Generated", _format_datetime(generated_at or datetime.now())),
            ("Topics", str(summary.total_nodes)),
            ("Turns", str(summary.turn_count)),
            ("Deepest Level Reached", str(summary.max_depth_reached)),
            ("Explored / Rich / Exhausted", f"{coverage.explored} / {coverage.rich} / {coverage.exhausted}"),
        ],
    )
    _render_average(pdf, summary.average_score)

    _section_title(pdf, "Top Technical Terms")
    _render_buzzwords(pdf, summary)

    if summary.exhausted_topics:
        _section_title(pdf, "Exhausted Topics")
        pdf.set_font(pdf._font_regular, "", 11)
        for label in summary.exhausted_topics:
            pdf.set_x(pdf.l_margin)
            pdf.multi_cell(_effective_width(pdf), 6, f"• {label}", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        pdf.ln(2)

    _section_title(pdf, "Topic Tree")
    pdf.set_font(pdf._font_mono, "", 9)
    for line in summary.rendered_tree_text.splitlines():
        pdf.set_x(pdf.l_margin)
        pdf.multi_cell(_effective_width(pdf), 5, line, new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    return bytes(pdf.output())


__all__ = ["ReportPDF", "render_summary_pdf"]
