from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from flask import current_app
from sqlalchemy import func, or_

from app.pms.audit import record_event
from app.pms.errors import Conflict, NotFound, ServiceError
from app.pms.modules.lease_templates.docx_processor import (
    TemplateError,
    extract_variables,
    lookup_value,
    parse_docx_template,
    preview_template_content,
    validate_template_format,
)
from app.pms.modules.lease_templates.models import TEMPLATE_TYPE_LABELS, TEMPLATE_TYPES, LeaseTemplate
from app.pms.modules.lease_templates.template_variables import sample_data, validate_variables
from app.pms.storage import Storage, StorageError
from app.pms.utils import (
    apply_updates,
    enum_errors,
    field_errors,
    model_to_dict,
    parse_bool,
    parse_fields,
    required_errors,
    sanitize_upload_filename,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session
    from app.pms.models import User


TEMPLATE_FIELDS = {
    "name": "str",
    "type": "str",
    "description": "str",
    "template_content": "str",
    "minnesota_compliant": "bool",
    "compliance_notes": "str",
    "is_active": "bool",
    "is_default": "bool",
}
UPDATE_FIELDS = {k: v for k, v in TEMPLATE_FIELDS.items() if k != "type"}

MAX_TEMPLATE_SIZE = 10 * 1024 * 1024
DOCX_MIMETYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def validate_template_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    required = {"name": "Template name", "type": "Template type"}
    if partial:
        required = {k: v for k, v in required.items() if k in payload and k != "type"}
    errors.extend(required_errors(payload, required))
    errors.extend(field_errors(payload, TEMPLATE_FIELDS))
    errors.extend(enum_errors(payload, {"type": TEMPLATE_TYPES}))
    if partial and "type" in payload:
        errors.append("Template type cannot be changed; duplicate the template instead.")
    name = payload.get("name")
    if isinstance(name, str) and len(name.strip()) > 255:
        errors.append("Template name must be at most 255 characters.")
    return errors


def serialize_template(t: LeaseTemplate) -> dict:
    d = model_to_dict(t)
    d["type_label"] = TEMPLATE_TYPE_LABELS.get(t.type, t.type)
    d["has_file"] = bool(t.template_file_path)
    return d


def get_template(s: "Session", template_id: int) -> LeaseTemplate:
    tpl = s.get(LeaseTemplate, template_id)
    if not tpl:
        raise NotFound("Template not found.")
    return tpl


def list_templates(s: "Session", args: dict) -> "Query":
    q = s.query(LeaseTemplate)
    tpl_type = (args.get("type") or "").strip()
    if tpl_type:
        q = q.filter(LeaseTemplate.type == tpl_type)
    for key, col in (
        ("is_active", LeaseTemplate.is_active),
        ("is_archived", LeaseTemplate.is_archived),
        ("is_default", LeaseTemplate.is_default),
    ):
        raw = args.get(key)
        if raw not in (None, ""):
            try:
                q = q.filter(col.is_(parse_bool(raw)))
            except ValueError:
                raise ServiceError(f"{key} must be true or false.") from None
    search = (args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(LeaseTemplate.name.ilike(like), LeaseTemplate.description.ilike(like)))
    return q.order_by(LeaseTemplate.type.asc(), LeaseTemplate.is_default.desc(), LeaseTemplate.name.asc(), LeaseTemplate.version.desc())


def _check_upload(file_bytes: bytes, filename: str) -> None:
    if len(file_bytes) > MAX_TEMPLATE_SIZE:
        raise ServiceError(f"Template file size exceeds maximum of {MAX_TEMPLATE_SIZE // 1024 // 1024}MB")
    if not filename.lower().endswith(".docx"):
        raise ServiceError("Template file must have a .docx extension")


def _check_name_free(s: "Session", name: str, version: int, exclude_id: int | None = None) -> None:
    q = s.query(LeaseTemplate.id).filter(LeaseTemplate.name == name, LeaseTemplate.version == version)
    if exclude_id is not None:
        q = q.filter(LeaseTemplate.id != exclude_id)
    if q.first():
        raise Conflict(f"A template named {name} already exists.")


def _unset_other_defaults(s: "Session", tpl: LeaseTemplate) -> None:
    (
        s.query(LeaseTemplate)
        .filter(LeaseTemplate.type == tpl.type, LeaseTemplate.id != tpl.id, LeaseTemplate.is_default.is_(True))
        .update({LeaseTemplate.is_default: False}, synchronize_session="fetch")
    )


def create_template(
    s: "Session",
    payload: dict,
    user: "User",
    *,
    storage: Storage | None = None,
    file_bytes: bytes | None = None,
    filename: str | None = None,
) -> LeaseTemplate:
    """
    Create a template record.

    With a DOCX upload the file is stored and the template stays inactive until
    confirm_template has validated and parsed it. Text-only templates are active
    right away.
    """
    values = parse_fields(payload, TEMPLATE_FIELDS, drop_none=True)
    values.pop("is_default", None)
    _check_name_free(s, values["name"], 1)
    now = datetime.utcnow()
    tpl = LeaseTemplate(**values, version=1, created_by_id=user.id, created_at=now, updated_at=now)

    if file_bytes:
        if storage is None:
            raise ServiceError("Template storage is not configured.")
        safe_name = sanitize_upload_filename(filename)
        _check_upload(file_bytes, safe_name)
        key = f"templates/{user.id}/{tpl.type.lower()}/{uuid.uuid4().hex}-{safe_name}"
        storage.put_bytes(key, file_bytes, content_type=DOCX_MIMETYPE)
        tpl.template_file_path = key
        tpl.template_file_name = safe_name
        tpl.is_active = False
    else:
        tpl.is_active = True
        tpl.variables = extract_variables(tpl.template_content or "")

    s.add(tpl)
    s.flush()
    record_event(
        s,
        actor=user,
        action="lease_template.create",
        entity_type="LeaseTemplate",
        entity_id=str(tpl.id),
        metadata={"name": tpl.name, "type": tpl.type, "file": tpl.template_file_path},
    )
    return tpl


def confirm_template(s: "Session", tpl: LeaseTemplate, user: "User", storage: Storage) -> dict[str, Any]:
    """
    Validate and parse an uploaded DOCX, then activate the template.

    An invalid file is removed together with its template record before the
    TemplateError is raised; the caller commits that removal.
    """
    if not tpl.template_file_path:
        raise ServiceError("No template file path found.")
    data = storage.read_bytes(tpl.template_file_path)
    check = validate_template_format(data)
    if not check["valid"]:
        try:
            storage.delete(tpl.template_file_path)
        except StorageError:
            current_app.logger.warning("Could not delete rejected template file %s", tpl.template_file_path)
        record_event(
            s,
            actor=user,
            action="lease_template.reject",
            entity_type="LeaseTemplate",
            entity_id=str(tpl.id),
            reason=check["error"],
            metadata={"name": tpl.name, "file": tpl.template_file_path},
        )
        s.delete(tpl)
        s.flush()
        raise TemplateError(check["error"] or "Invalid template format")

    parsed = parse_docx_template(data)
    validation = validate_variables(parsed["variables"])
    tpl.template_content = parsed["content"]
    tpl.variables = parsed["variables"]
    tpl.variable_schema = {"extracted": parsed["variables"], "validation": validation}
    tpl.is_active = True
    tpl.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="lease_template.confirm",
        entity_type="LeaseTemplate",
        entity_id=str(tpl.id),
        metadata={"variables": parsed["variables"], "warnings": validation["warnings"] + check["warnings"]},
    )
    return {"template": tpl, "validation": validation, "warnings": check["warnings"]}


def update_template(s: "Session", tpl: LeaseTemplate, payload: dict, user: "User", reason: str | None = None) -> LeaseTemplate:
    values = parse_fields(payload, UPDATE_FIELDS)
    if values.get("name") and values["name"] != tpl.name:
        _check_name_free(s, values["name"], tpl.version, exclude_id=tpl.id)
    changes = apply_updates(tpl, values)
    if "template_content" in changes and not tpl.template_file_path:
        tpl.variables = extract_variables(tpl.template_content or "")
    if tpl.is_default:
        _unset_other_defaults(s, tpl)
    tpl.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="lease_template.edit",
        entity_type="LeaseTemplate",
        entity_id=str(tpl.id),
        reason=reason,
        metadata={"changes": changes},
    )
    return tpl


def set_default_template(s: "Session", tpl: LeaseTemplate, user: "User") -> LeaseTemplate:
    if tpl.is_archived:
        raise Conflict("Archived templates cannot be the default.")
    _unset_other_defaults(s, tpl)
    tpl.is_default = True
    tpl.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="lease_template.set_default",
        entity_type="LeaseTemplate",
        entity_id=str(tpl.id),
        metadata={"type": tpl.type},
    )
    return tpl


def archive_template(s: "Session", tpl: LeaseTemplate, user: "User", *, archive: bool = True) -> LeaseTemplate:
    tpl.is_archived = archive
    if archive:
        tpl.is_default = False
    tpl.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="lease_template.archive" if archive else "lease_template.unarchive",
        entity_type="LeaseTemplate",
        entity_id=str(tpl.id),
    )
    return tpl


def duplicate_template(s: "Session", source: LeaseTemplate, payload: dict, user: "User") -> LeaseTemplate:
    """Copy a template, either as the next version of the same name or as a new template."""
    new_version = bool(parse_bool(payload.get("create_new_version")) or False)
    if new_version:
        name = source.name
        latest = s.query(func.max(LeaseTemplate.version)).filter(LeaseTemplate.name == source.name).scalar()
        version = (latest or 0) + 1
        parent_id = source.id
    else:
        name = (payload.get("name") or "").strip()
        if not name:
            raise ServiceError("Template name is required.")
        _check_name_free(s, name, 1)
        version = 1
        parent_id = None

    now = datetime.utcnow()
    copy = LeaseTemplate(
        name=name,
        type=source.type,
        version=version,
        template_file_path=source.template_file_path,
        template_file_name=source.template_file_name,
        template_content=source.template_content,
        variables=list(source.variables or []),
        variable_schema=source.variable_schema,
        description=source.description,
        is_default=False,
        is_active=True,
        is_archived=False,
        parent_template_id=parent_id,
        change_notes=(payload.get("change_notes") or "").strip() or None,
        minnesota_compliant=source.minnesota_compliant,
        compliance_notes=source.compliance_notes,
        created_by_id=user.id,
        created_at=now,
        updated_at=now,
    )
    s.add(copy)
    s.flush()
    record_event(
        s,
        actor=user,
        action="lease_template.duplicate",
        entity_type="LeaseTemplate",
        entity_id=str(copy.id),
        metadata={"source_id": source.id, "version": version, "new_version": new_version},
    )
    return copy


def delete_template(s: "Session", tpl: LeaseTemplate, user: "User") -> None:
    """Soft delete: deactivated templates are never picked for generation."""
    tpl.is_active = False
    tpl.is_default = False
    tpl.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="lease_template.delete",
        entity_type="LeaseTemplate",
        entity_id=str(tpl.id),
        metadata={"name": tpl.name, "version": tpl.version},
    )


def preview_template(tpl: LeaseTemplate, data: dict | None = None) -> dict[str, Any]:
    values = data or sample_data()
    content = tpl.template_content or ""
    names = list(tpl.variables or []) or extract_variables(content)
    used = [n for n in names if lookup_value(values, n) is not None]
    missing = [n for n in names if lookup_value(values, n) is None]
    return {
        "content": preview_template_content(content, values),
        "used_variables": used,
        "missing_variables": missing,
    }


def template_for_type(s: "Session", template_type: str) -> LeaseTemplate | None:
    """The active template used for generation: the default one first, then the newest."""
    return (
        s.query(LeaseTemplate)
        .filter(
            LeaseTemplate.type == template_type,
            LeaseTemplate.is_active.is_(True),
            LeaseTemplate.is_archived.is_(False),
        )
        .order_by(LeaseTemplate.is_default.desc(), LeaseTemplate.created_at.desc(), LeaseTemplate.id.desc())
        .first()
    )
