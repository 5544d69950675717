from __future__ import annotations  # Session report package exports

from .pdf import ReportPDF, render_summary_pdf

__all__ = ["ReportPDF", "render_summary_pdf"]
