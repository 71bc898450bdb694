"""
DOCX lease template processing: variable extraction, format checks and rendering.

Placeholders look like {{tenant_name}} or {{tenant.email}}. Conditional sections
are {{#pets_allowed}}...{{/pets_allowed}} or {{#if pets_allowed}}...{{/if}}; a
section whose marker paragraphs stand alone is removed paragraph by paragraph,
otherwise it is handled inline inside a single paragraph.
"""

from __future__ import annotations

import io
import re
import zipfile
from collections.abc import Iterator, Mapping
from typing import Any

from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.text.paragraph import Paragraph

SIMPLE_VARIABLE_RE = re.compile(r"\{\{(?!#|/)([\w.]+)\}\}")
SECTION_START_RE = re.compile(r"\{\{#(?:if\s+)?(\w+)\}\}")
SECTION_END_RE = re.compile(r"\{\{/(\w+)\}\}")
INLINE_SECTION_RE = re.compile(r"\{\{#(if\s+)?(\w+)\}\}((?:(?!\{\{#).)*?)\{\{/(?:if|\2)\}\}", re.DOTALL)

_BLOCK_START_RE = re.compile(r"^\s*\{\{#(if\s+)?(\w+)\}\}\s*$")
_BLOCK_END_RE = re.compile(r"^\s*\{\{/(\w+)\}\}\s*$")

REQUIRED_PARTS = ("word/document.xml", "[Content_Types].xml")

NO_VARIABLES_WARNING = "No template variables found. Templates should contain variables like {{tenant_name}}."


class TemplateError(ValueError):
    pass


def extract_variables(content: str) -> list[str]:
    """Unique, sorted placeholder and section names found in the text."""
    names = set(SIMPLE_VARIABLE_RE.findall(content or ""))
    names.update(SECTION_START_RE.findall(content or ""))
    return sorted(names)


def _open(data: bytes):
    try:
        return Document(io.BytesIO(data))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
        raise TemplateError(f"Failed to parse DOCX template: {e}") from e


def _containers(doc) -> Iterator[Any]:
    """The document body, then every header/footer that has its own definition."""
    yield doc.element.body
    for section in doc.sections:
        for hf in (
            section.header,
            section.footer,
            section.first_page_header,
            section.first_page_footer,
            section.even_page_header,
            section.even_page_footer,
        ):
            if not hf.is_linked_to_previous:
                yield hf.part.element


def _element_text(el) -> str:
    return "".join(t.text or "" for t in el.iter(qn("w:t")))


def document_text(doc) -> str:
    lines = []
    for container in _containers(doc):
        lines.extend(_element_text(p) for p in container.iter(qn("w:p")))
    return "\n".join(lines)


def parse_docx_template(data: bytes) -> dict[str, Any]:
    doc = _open(data)
    text = document_text(doc)
    return {"content": text, "variables": extract_variables(text), "raw_text": text}


def validate_template_format(data: bytes) -> dict[str, Any]:
    """{"valid": bool, "error": str | None, "warnings": [...]} for an uploaded file."""
    if not data or not zipfile.is_zipfile(io.BytesIO(data)):
        return {"valid": False, "error": "Invalid DOCX file: not a zip archive", "warnings": []}
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        names = set(zf.namelist())
    for part in REQUIRED_PARTS:
        if part not in names:
            return {"valid": False, "error": f"Invalid DOCX file: missing {part}", "warnings": []}
    try:
        text = document_text(_open(data))
    except TemplateError as e:
        return {"valid": False, "error": f"Invalid DOCX file: {e}", "warnings": []}

    warnings = []
    if not extract_variables(text):
        warnings.append(NO_VARIABLES_WARNING)
    opening = len(SECTION_START_RE.findall(text))
    closing = len(SECTION_END_RE.findall(text))
    if opening != closing:
        warnings.append(f"Unbalanced conditional blocks: {opening} opening, {closing} closing.")
    return {"valid": True, "error": None, "warnings": warnings}


def lookup_value(data: Mapping[str, Any], path: str) -> Any:
    if path in data:
        return data[path]
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def is_falsy(value: Any) -> bool:
    """None, False, "", 0, "No", "false" and "0" all hide a section."""
    if isinstance(value, str):
        return value.strip() in ("", "No", "false", "0")
    return not value


def render_text(text: str, data: Mapping[str, Any]) -> str:
    """Resolve inline sections innermost first, then placeholders. Missing values render as [name]."""

    def _section(m: re.Match) -> str:
        return "" if is_falsy(lookup_value(data, m.group(2))) else m.group(3)

    previous = None
    while previous != text:
        previous = text
        text = INLINE_SECTION_RE.sub(_section, text)

    def _placeholder(m: re.Match) -> str:
        value = lookup_value(data, m.group(1))
        return f"[{m.group(1)}]" if value is None else str(value)

    return SIMPLE_VARIABLE_RE.sub(_placeholder, text)


def _block_children(parent) -> list:
    return [el for el in parent if el.tag in (qn("w:p"), qn("w:tbl"))]


def _find_block_section(children: list) -> tuple[int, int, str] | None:
    """First standalone start marker paragraph and its matching end: (start, end, name)."""
    for i, el in enumerate(children):
        if el.tag != qn("w:p"):
            continue
        m = _BLOCK_START_RE.match(_element_text(el))
        if not m:
            continue
        name, closer = m.group(2), ("if" if m.group(1) else m.group(2))
        depth = 0
        for j in range(i + 1, len(children)):
            other = children[j]
            if other.tag != qn("w:p"):
                continue
            text = _element_text(other)
            if _BLOCK_START_RE.match(text):
                depth += 1
                continue
            end = _BLOCK_END_RE.match(text)
            if not end:
                continue
            if depth:
                depth -= 1
            elif end.group(1) in (closer, name):
                return i, j, name
    return None


def _strip_block_sections(parent, data: Mapping[str, Any]) -> None:
    while True:
        children = _block_children(parent)
        found = _find_block_section(children)
        if not found:
            break
        start, end, name = found
        doomed = children[start : end + 1] if is_falsy(lookup_value(data, name)) else [children[start], children[end]]
        for el in doomed:
            parent.remove(el)
    for child in _block_children(parent):
        if child.tag == qn("w:tbl"):
            for cell in child.iter(qn("w:tc")):
                _strip_block_sections(cell, data)
                # a table cell must keep at least one paragraph
                if cell.find(qn("w:p")) is None:
                    cell.append(OxmlElement("w:p"))


def _render_paragraph(paragraph: Paragraph, data: Mapping[str, Any]) -> None:
    runs = [r for r in paragraph.runs if r.text]
    whole = "".join(r.text for r in runs)
    if "{{" not in whole:
        return
    rendered = render_text(whole, data)
    if rendered == whole:
        return
    # keep the first run's formatting for the whole rendered text
    runs[0].text = rendered
    for r in runs[1:]:
        r.text = ""


def render_docx_template(data: bytes, values: Mapping[str, Any]) -> bytes:
    doc = _open(data)
    try:
        for container in _containers(doc):
            _strip_block_sections(container, values)
            for p in list(container.iter(qn("w:p"))):
                _render_paragraph(Paragraph(p, None), values)
        out = io.BytesIO()
        doc.save(out)
    except Exception as e:
        raise TemplateError(f"Failed to render template: {e}") from e
    return out.getvalue()


def preview_template_content(content: str, data: Mapping[str, Any]) -> str:
    return render_text(content or "", data)
