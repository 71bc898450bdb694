from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from app.pms.audit import record_event
from app.pms.errors import Conflict, NotFound, ServiceError
from app.pms.modules.maintenance.costs import build_cost_item, sync_request_costs
from app.pms.modules.maintenance.models import (
    COST_TYPES,
    INVOICE_PAYMENT_METHODS,
    INVOICE_STATUS_LABELS,
    INVOICE_STATUSES,
    MaintenanceInvoice,
    MaintenanceRequest,
)
from app.pms.modules.properties.models import Unit
from app.pms.modules.properties.service import owned_property_ids
from app.pms.modules.vendors.service import get_vendor_for_user
from app.pms.storage import Storage
from app.pms.utils import (
    apply_updates,
    field_errors,
    generate_number,
    model_to_dict,
    parse_fields,
    sanitize_upload_filename,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session
    from app.pms.models import User


INVOICE_FIELDS = {
    "vendor_id": "int",
    "vendor_invoice_number": "str",
    "invoice_date": "date",
    "due_date": "date",
    "description": "str",
    "subtotal": "decimal",
    "tax_amount": "decimal",
}

ZERO = Decimal("0.00")


def validate_invoice_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    if not partial and payload.get("subtotal") in (None, ""):
        errors.append("Subtotal is required.")
    type_errors = field_errors(payload, INVOICE_FIELDS)
    errors.extend(type_errors)
    if type_errors:
        return errors
    v = parse_fields(payload, INVOICE_FIELDS)
    if v.get("subtotal") is not None and v["subtotal"] < 0:
        errors.append("Subtotal must not be negative.")
    if v.get("tax_amount") is not None and v["tax_amount"] < 0:
        errors.append("Tax amount must not be negative.")
    if v.get("invoice_date") and v.get("due_date") and v["due_date"] < v["invoice_date"]:
        errors.append("Due date must not be before the invoice date.")
    return errors


def serialize_invoice(inv: MaintenanceInvoice) -> dict:
    d = model_to_dict(inv)
    d["status_label"] = INVOICE_STATUS_LABELS.get(inv.status, inv.status)
    d["vendor_name"] = inv.vendor.company_name if inv.vendor else None
    d["has_file"] = bool(inv.file_key)
    return d


def owned_invoices(s: "Session", user: "User") -> "Query":
    return (
        s.query(MaintenanceInvoice)
        .join(MaintenanceRequest, MaintenanceRequest.id == MaintenanceInvoice.request_id)
        .join(Unit, Unit.id == MaintenanceRequest.unit_id)
        .filter(Unit.property_id.in_(owned_property_ids(user)))
    )


def get_invoice_for_user(s: "Session", user: "User", invoice_id: int) -> MaintenanceInvoice:
    inv = owned_invoices(s, user).filter(MaintenanceInvoice.id == invoice_id).one_or_none()
    if not inv:
        raise NotFound("Invoice not found.")
    return inv


def list_invoices(s: "Session", user: "User", args: dict) -> "Query":
    q = owned_invoices(s, user)
    status = (args.get("status") or "").strip()
    if status:
        q = q.filter(MaintenanceInvoice.status == status)
    for key, col in (("vendor_id", MaintenanceInvoice.vendor_id), ("request_id", MaintenanceInvoice.request_id)):
        raw = args.get(key)
        if raw:
            try:
                q = q.filter(col == int(raw))
            except (TypeError, ValueError):
                raise ServiceError(f"{key} must be an integer.") from None
    return q.order_by(MaintenanceInvoice.invoice_date.desc(), MaintenanceInvoice.id.desc())


def _store_invoice_file(storage: Storage, inv: MaintenanceInvoice, file_bytes: bytes, filename: str, content_type: str | None) -> None:
    safe_name = sanitize_upload_filename(filename)
    stored = storage.save(f"maintenance/{inv.request_id}/invoices/{inv.invoice_number}/{safe_name}", file_bytes, content_type=content_type)
    inv.file_key = stored.key
    inv.file_name = safe_name
    inv.file_size = stored.size
    inv.file_mime_type = stored.content_type


def create_invoice(
    s: "Session",
    req: MaintenanceRequest,
    payload: dict,
    user: "User",
    *,
    storage: Storage | None = None,
    file_bytes: bytes | None = None,
    filename: str | None = None,
    content_type: str | None = None,
) -> MaintenanceInvoice:
    values = parse_fields(payload, INVOICE_FIELDS, drop_none=True)
    if values.get("vendor_id"):
        get_vendor_for_user(s, user, values["vendor_id"])
    else:
        values["vendor_id"] = req.vendor_id
    values.setdefault("invoice_date", date.today())
    values.setdefault("tax_amount", ZERO)

    now = datetime.utcnow()
    inv = MaintenanceInvoice(
        **values,
        request_id=req.id,
        invoice_number=generate_number("INV", now),
        status="DRAFT",
        total_amount=values["subtotal"] + values["tax_amount"],
        created_by_id=user.id,
        created_at=now,
        updated_at=now,
    )
    req.invoices.append(inv)
    s.flush()
    if file_bytes and storage is not None:
        _store_invoice_file(storage, inv, file_bytes, filename or "invoice.pdf", content_type)

    record_event(
        s,
        actor=user,
        action="invoice.create",
        entity_type="MaintenanceInvoice",
        entity_id=str(inv.id),
        metadata={
            "invoice_number": inv.invoice_number,
            "request_id": req.id,
            "total_amount": str(inv.total_amount),
            "file_key": inv.file_key,
        },
    )
    return inv


def _require_status(inv: MaintenanceInvoice, allowed: tuple[str, ...], action: str) -> None:
    if inv.status not in allowed:
        raise Conflict(f"Cannot {action} an invoice in status {inv.status}.")


def _transition(s: "Session", inv: MaintenanceInvoice, new_status: str, user: "User", *, action: str, reason: str | None = None, metadata: dict | None = None) -> None:
    old = inv.status
    inv.status = new_status
    inv.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action=f"invoice.{action}",
        entity_type="MaintenanceInvoice",
        entity_id=str(inv.id),
        reason=reason,
        metadata={"invoice_number": inv.invoice_number, "from": old, "to": new_status, **(metadata or {})},
    )


def update_invoice(s: "Session", inv: MaintenanceInvoice, payload: dict, user: "User") -> MaintenanceInvoice:
    _require_status(inv, ("DRAFT",), "edit")
    values = parse_fields(payload, INVOICE_FIELDS)
    if values.get("vendor_id"):
        get_vendor_for_user(s, user, values["vendor_id"])
    changes = apply_updates(inv, values)
    new_total = (inv.subtotal or ZERO) + (inv.tax_amount or ZERO)
    if new_total != inv.total_amount:
        changes["total_amount"] = {"old": str(inv.total_amount), "new": str(new_total)}
        inv.total_amount = new_total
    inv.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="invoice.edit",
        entity_type="MaintenanceInvoice",
        entity_id=str(inv.id),
        metadata={"invoice_number": inv.invoice_number, "changes": changes},
    )
    return inv


def delete_invoice(s: "Session", inv: MaintenanceInvoice, user: "User", storage: Storage | None = None) -> None:
    _require_status(inv, ("DRAFT", "CANCELLED"), "delete")
    record_event(
        s,
        actor=user,
        action="invoice.delete",
        entity_type="MaintenanceInvoice",
        entity_id=str(inv.id),
        metadata={"invoice_number": inv.invoice_number},
    )
    if inv.file_key and storage is not None:
        storage.delete(inv.file_key)
    inv.request.invoices.remove(inv)


def submit_invoice(s: "Session", inv: MaintenanceInvoice, user: "User") -> MaintenanceInvoice:
    _require_status(inv, ("DRAFT",), "submit")
    inv.submitted_at = datetime.utcnow()
    inv.submitted_by_id = user.id
    _transition(s, inv, "SUBMITTED", user, action="submit")
    return inv


def start_review(s: "Session", inv: MaintenanceInvoice, user: "User") -> MaintenanceInvoice:
    _require_status(inv, ("SUBMITTED",), "start review of")
    inv.review_started_at = datetime.utcnow()
    inv.review_started_by_id = user.id
    _transition(s, inv, "UNDER_REVIEW", user, action="start_review")
    return inv


def approve_invoice(s: "Session", inv: MaintenanceInvoice, payload: dict, user: "User") -> MaintenanceInvoice:
    """Approve; optionally book the invoice total as one cost line item on the work order."""
    _require_status(inv, ("SUBMITTED", "UNDER_REVIEW"), "approve")
    cost_type = (payload.get("cost_type") or "OTHER").strip()
    if cost_type not in COST_TYPES:
        raise ServiceError(f"Invalid cost_type. Must be one of: {', '.join(COST_TYPES)}")

    inv.reviewed_at = datetime.utcnow()
    inv.reviewed_by_id = user.id
    inv.review_notes = (payload.get("review_notes") or "").strip() or None

    cost_item_id = None
    if payload.get("create_cost_item"):
        req = inv.request
        item = build_cost_item(
            req,
            {
                "type": cost_type,
                "description": (payload.get("cost_description") or "").strip() or f"Invoice {inv.invoice_number}",
                "quantity": 1,
                "unit_cost": inv.total_amount,
            },
            invoice_id=inv.id,
        )
        req.cost_items.append(item)
        s.flush()
        sync_request_costs(req)
        cost_item_id = item.id

    _transition(s, inv, "APPROVED", user, action="approve", metadata={"cost_item_id": cost_item_id})
    return inv


def reject_invoice(s: "Session", inv: MaintenanceInvoice, payload: dict, user: "User") -> MaintenanceInvoice:
    _require_status(inv, ("SUBMITTED", "UNDER_REVIEW"), "reject")
    reason = (payload.get("rejection_reason") or "").strip()
    if not reason:
        raise ServiceError("Rejection reason is required.")
    inv.reviewed_at = datetime.utcnow()
    inv.reviewed_by_id = user.id
    inv.rejection_reason = reason
    inv.review_notes = (payload.get("review_notes") or "").strip() or inv.review_notes
    _transition(s, inv, "REJECTED", user, action="reject", reason=reason)
    return inv


def mark_invoice_paid(s: "Session", inv: MaintenanceInvoice, payload: dict, user: "User") -> MaintenanceInvoice:
    _require_status(inv, ("APPROVED",), "mark paid")
    method = (payload.get("payment_method") or "").strip() or None
    if method and method not in INVOICE_PAYMENT_METHODS:
        raise ServiceError(f"Invalid payment_method. Must be one of: {', '.join(INVOICE_PAYMENT_METHODS)}")
    inv.paid_at = datetime.utcnow()
    inv.paid_by_id = user.id
    inv.payment_method = method
    inv.payment_reference = (payload.get("payment_reference") or "").strip() or None
    _transition(s, inv, "PAID", user, action="mark_paid", metadata={"payment_method": method})
    return inv


def cancel_invoice(s: "Session", inv: MaintenanceInvoice, payload: dict, user: "User") -> MaintenanceInvoice:
    if inv.status == "PAID":
        raise Conflict("Cannot cancel a paid invoice.")
    if inv.status == "CANCELLED":
        raise Conflict("Invoice is already cancelled.")
    _transition(s, inv, "CANCELLED", user, action="cancel", reason=(payload.get("reason") or "").strip() or None)
    return inv


def invoice_summary(s: "Session", user: "User", args: dict) -> dict:
    invoices = list_invoices(s, user, {k: v for k, v in args.items() if k != "status"}).all()
    by_status = {st: {"status": st, "label": INVOICE_STATUS_LABELS[st], "count": 0, "amount": ZERO} for st in INVOICE_STATUSES}
    for inv in invoices:
        row = by_status.setdefault(inv.status, {"status": inv.status, "label": inv.status, "count": 0, "amount": ZERO})
        row["count"] += 1
        row["amount"] += inv.total_amount or ZERO

    def _bucket(*statuses: str) -> dict:
        return {
            "count": sum(by_status[st]["count"] for st in statuses),
            "amount": float(sum((by_status[st]["amount"] for st in statuses), ZERO)),
        }

    return {
        "total_invoices": len(invoices),
        "total_amount": float(sum((inv.total_amount or ZERO for inv in invoices), ZERO)),
        "by_status": [{**row, "amount": float(row["amount"])} for row in by_status.values() if row["count"]],
        "pending_approval": _bucket("SUBMITTED", "UNDER_REVIEW"),
        "pending_payment": _bucket("APPROVED"),
    }
