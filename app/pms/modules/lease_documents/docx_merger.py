"""
Combine rendered DOCX documents into one, with a page break between each.

The first document supplies styles, numbering and page setup; later documents
contribute their body content and embedded images.
"""

from __future__ import annotations

import copy
import io

from docx import Document
from docx.oxml import OxmlElement
from docx.oxml.ns import qn

_BLIP_EMBED = qn("r:embed")


class DocumentMergeError(RuntimeError):
    pass


def _page_break_paragraph():
    p = OxmlElement("w:p")
    r = OxmlElement("w:r")
    br = OxmlElement("w:br")
    br.set(qn("w:type"), "page")
    r.append(br)
    p.append(r)
    return p


def _copy_images(el, source_part, target_part) -> None:
    """Re-point image references in a copied element at images added to the target."""
    for blip in el.iter(qn("a:blip")):
        rid = blip.get(_BLIP_EMBED)
        if not rid:
            continue
        image_part = source_part.related_parts.get(rid)
        if image_part is None:
            continue
        new_rid, _image = target_part.get_or_add_image(io.BytesIO(image_part.blob))
        blip.set(_BLIP_EMBED, new_rid)


def merge_docx_documents(documents: list[bytes]) -> bytes:
    if not documents:
        raise DocumentMergeError("No documents to merge")
    if len(documents) == 1:
        return documents[0]

    try:
        base = Document(io.BytesIO(documents[0]))
        body = base.element.body
        sect_pr = body.sectPr

        def _insert(el) -> None:
            if sect_pr is not None:
                sect_pr.addprevious(el)
            else:
                body.append(el)

        for data in documents[1:]:
            other = Document(io.BytesIO(data))
            _insert(_page_break_paragraph())
            for child in other.element.body:
                if child.tag == qn("w:sectPr"):
                    continue
                el = copy.deepcopy(child)
                _copy_images(el, other.part, base.part)
                _insert(el)

        out = io.BytesIO()
        base.save(out)
    except Exception as e:
        raise DocumentMergeError(f"Failed to merge documents: {e}") from e
    return out.getvalue()


def add_page_break(data: bytes) -> bytes:
    try:
        doc = Document(io.BytesIO(data))
        doc.add_page_break()
        out = io.BytesIO()
        doc.save(out)
    except Exception as e:
        raise DocumentMergeError(f"Failed to add page break: {e}") from e
    return out.getvalue()
