"""
DOCX -> HTML -> PDF conversion for generated leases.

python-docx reads the merged document, a small style map turns it into HTML, and
fpdf2 lays the HTML out on US Letter pages with one-inch margins in Times 12pt.
"""

from __future__ import annotations

import html
import io

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.oxml.ns import qn
from docx.table import Table
from docx.text.paragraph import Paragraph
from fpdf import FPDF
from PyPDF2 import PdfReader

STYLE_MAP = {
    "Heading 1": ("h1", None),
    "Heading 2": ("h2", None),
    "Heading 3": ("h3", None),
    "Title": ("h1", "title"),
    "Subtitle": ("h2", "subtitle"),
}
_ALIGN = {
    WD_ALIGN_PARAGRAPH.CENTER: "center",
    WD_ALIGN_PARAGRAPH.RIGHT: "right",
    WD_ALIGN_PARAGRAPH.JUSTIFY: "justify",
}

PAGE_BREAK = "<!-- page-break -->"
PAGE_FORMAT = "Letter"
MARGIN_MM = 25.4
FONT_FAMILY = "Times"
FONT_SIZE_PT = 12

# core PDF fonts are latin-1 only
_TYPOGRAPHIC = {
    "\u2018": "'",
    "\u2019": "'",
    "\u201c": '"',
    "\u201d": '"',
    "\u2013": "-",
    "\u2014": "--",
    "\u2026": "...",
    "\u2022": "-",
    "\u2122": "(TM)",
}

class PdfConversionError(RuntimeError):
    pass


def _run_pieces(r_el) -> list[str]:
    """Escaped text of one run; a page break comes back as its own PAGE_BREAK piece."""
    pieces: list[str] = []
    for child in r_el:
        if child.tag == qn("w:t"):
            pieces.append(html.escape(child.text or ""))
        elif child.tag == qn("w:tab"):
            pieces.append("&nbsp;&nbsp;&nbsp;&nbsp;")
        elif child.tag == qn("w:br"):
            pieces.append(PAGE_BREAK if child.get(qn("w:type")) == "page" else "<br>")
        elif child.tag == qn("w:cr"):
            pieces.append("<br>")
    return pieces


def _wrap_run(text: str, run) -> str:
    if not text:
        return text
    if run.bold:
        text = f"<b>{text}</b>"
    if run.italic:
        text = f"<i>{text}</i>"
    if run.underline:
        text = f"<u>{text}</u>"
    return text


def _paragraph_segments(paragraph: Paragraph) -> list[str]:
    """Inline HTML of a paragraph, split wherever a page break occurs."""
    segments = [""]
    for run in paragraph.runs:
        buf = ""
        for piece in _run_pieces(run._r):
            if piece == PAGE_BREAK:
                segments[-1] += _wrap_run(buf, run)
                segments.append("")
                buf = ""
            else:
                buf += piece
        segments[-1] += _wrap_run(buf, run)
    return segments


def _paragraph_html(paragraph: Paragraph) -> str:
    style = paragraph.style.name if paragraph.style is not None else ""
    tag, css_class = STYLE_MAP.get(style, ("p", None))
    attrs = f' class="{css_class}"' if css_class else ""
    align = _ALIGN.get(paragraph.alignment)
    if align and tag == "p":
        attrs += f' align="{align}"'
    out = []
    for segment in _paragraph_segments(paragraph):
        out.append(f"<{tag}{attrs}>{segment}</{tag}>" if segment.strip() else "<br>")
    return PAGE_BREAK.join(out)


def _table_html(table: Table) -> str:
    rows = [[html.escape(cell.text) for cell in row.cells] for row in table.rows]
    if not rows:
        return ""
    width = max(len(r) for r in rows)
    lines = ['<table border="1" width="100%">']
    for row in rows:
        cells = row + [""] * (width - len(row))
        lines.append("<tr>" + "".join(f"<td>{c}</td>" for c in cells) + "</tr>")
    lines.append("</table>")
    return "\n".join(lines)


def _list_kind(paragraph: Paragraph) -> str | None:
    style = paragraph.style.name if paragraph.style is not None else ""
    if style.startswith("List Bullet"):
        return "ul"
    if style.startswith("List Number"):
        return "ol"
    return None


def convert_docx_to_html(data: bytes) -> str:
    """Body HTML for a DOCX document; page breaks are marked with PAGE_BREAK."""
    try:
        doc = Document(io.BytesIO(data))
    except Exception as e:
        raise PdfConversionError(f"Failed to read DOCX: {e}") from e

    parts: list[str] = []
    open_list: str | None = None
    for child in doc.element.body.iterchildren():
        if child.tag == qn("w:p"):
            paragraph = Paragraph(child, doc)
            kind = _list_kind(paragraph)
            if kind != open_list:
                if open_list:
                    parts.append(f"</{open_list}>")
                if kind:
                    parts.append(f"<{kind}>")
                open_list = kind
            if kind:
                parts.append(f"<li>{''.join(_paragraph_segments(paragraph))}</li>")
            else:
                parts.append(_paragraph_html(paragraph))
        elif child.tag == qn("w:tbl"):
            if open_list:
                parts.append(f"</{open_list}>")
                open_list = None
            parts.append(_table_html(Table(child, doc)))
    if open_list:
        parts.append(f"</{open_list}>")
    return "\n".join(p for p in parts if p)


def to_latin1(text: str) -> str:
    for src, dst in _TYPOGRAPHIC.items():
        text = text.replace(src, dst)
    return text.encode("latin-1", "replace").decode("latin-1")


def convert_html_to_pdf(body_html: str, *, page_format: str = PAGE_FORMAT, margin_mm: float = MARGIN_MM) -> bytes:
    try:
        pdf = FPDF(orientation="portrait", unit="mm", format=page_format)
        pdf.set_margins(margin_mm, margin_mm, margin_mm)
        pdf.set_auto_page_break(auto=True, margin=margin_mm)
        pdf.set_font(FONT_FAMILY, size=FONT_SIZE_PT)
        pdf.add_page()
        for index, chunk in enumerate(to_latin1(body_html).split(PAGE_BREAK)):
            if index:
                pdf.add_page()
            if chunk.strip():
                pdf.write_html(chunk)
        return bytes(pdf.output())
    except Exception as e:
        raise PdfConversionError(f"Failed to convert DOCX to PDF: {e}") from e


def convert_docx_to_pdf(data: bytes) -> bytes:
    return convert_html_to_pdf(convert_docx_to_html(data))


def pdf_page_count(pdf_bytes: bytes) -> int:
    return len(PdfReader(io.BytesIO(pdf_bytes)).pages)
