from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request, send_file

from app.pms.db import db_session
from app.pms.errors import NotFound
from app.pms.models import User
from app.pms.modules.maintenance.costs import (
    bulk_create_cost_items,
    bulk_delete_cost_items,
    cost_summary,
    create_cost_item,
    delete_cost_item,
    get_cost_item,
    list_cost_items,
    serialize_cost_item,
    update_cost_item,
    validate_cost_item_payload,
)
from app.pms.modules.maintenance.escalation import acknowledge_escalation, emergency_stats, process_emergency_escalations
from app.pms.modules.maintenance.invoices import (
    approve_invoice,
    cancel_invoice,
    create_invoice,
    delete_invoice,
    get_invoice_for_user,
    invoice_summary,
    list_invoices,
    mark_invoice_paid,
    reject_invoice,
    serialize_invoice,
    start_review,
    submit_invoice,
    update_invoice,
    validate_invoice_payload,
)
from app.pms.modules.maintenance.service import (
    add_comment,
    create_request,
    get_request_for_user,
    list_requests,
    maintenance_stats,
    serialize_request,
    update_request,
    validate_request_payload,
)
from app.pms.pagination import paginate
from app.pms.rbac import require_permission
from app.pms.storage import storage_from_config
from app.pms.utils import model_to_dict

bp = Blueprint("maintenance", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


# ---------- Work orders ----------
@bp.get("")
@require_permission("maintenance.view")
def request_list():
    s = db_session()
    q = list_requests(s, _current_user(), request.args)
    return jsonify(paginate(q, request.args, serialize_request))


@bp.post("")
@require_permission("maintenance.edit")
def request_create():
    s = db_session()
    u = _current_user()
    payload = request.get_json(silent=True) or {}
    errors = validate_request_payload(payload)
    if errors:
        return jsonify({"errors": errors}), 400
    req = create_request(s, payload, u)
    s.commit()
    return jsonify(serialize_request(req, detail=True)), 201


@bp.get("/stats")
@require_permission("maintenance.view")
def request_stats():
    s = db_session()
    return jsonify(maintenance_stats(s, _current_user()))


@bp.get("/emergency-stats")
@require_permission("maintenance.view")
def request_emergency_stats():
    s = db_session()
    return jsonify(emergency_stats(s, _current_user()))


@bp.post("/escalations/run")
@require_permission("maintenance.escalate")
def escalations_run():
    s = db_session()
    result = process_emergency_escalations(s, current_app.config)
    s.commit()
    return jsonify(result)


@bp.get("/<int:request_id>")
@require_permission("maintenance.view")
def request_detail(request_id: int):
    s = db_session()
    req = get_request_for_user(s, _current_user(), request_id)
    return jsonify(serialize_request(req, detail=True))


@bp.route("/<int:request_id>", methods=["PUT", "PATCH"])
@require_permission("maintenance.edit")
def request_update(request_id: int):
    s = db_session()
    u = _current_user()
    req = get_request_for_user(s, u, request_id)
    payload = request.get_json(silent=True) or {}
    errors = validate_request_payload(payload, partial=True)
    if errors:
        return jsonify({"errors": errors}), 400
    update_request(s, req, payload, u, reason=payload.get("reason"))
    s.commit()
    return jsonify(serialize_request(req, detail=True))


@bp.post("/<int:request_id>/comments")
@require_permission("maintenance.edit")
def request_comment(request_id: int):
    s = db_session()
    u = _current_user()
    req = get_request_for_user(s, u, request_id)
    comment = add_comment(s, req, request.get_json(silent=True) or {}, u)
    s.commit()
    return jsonify(model_to_dict(comment)), 201


@bp.post("/<int:request_id>/acknowledge")
@require_permission("maintenance.escalate")
def request_acknowledge(request_id: int):
    s = db_session()
    u = _current_user()
    req = get_request_for_user(s, u, request_id)
    acknowledge_escalation(s, req, u)
    s.commit()
    return jsonify(serialize_request(req))


# ---------- Cost line items ----------
@bp.get("/<int:request_id>/costs")
@require_permission("maintenance.view")
def cost_list(request_id: int):
    s = db_session()
    req = get_request_for_user(s, _current_user(), request_id)
    return jsonify({"data": [serialize_cost_item(c) for c in list_cost_items(req, request.args)]})


@bp.get("/<int:request_id>/costs/summary")
@require_permission("maintenance.view")
def cost_summary_get(request_id: int):
    s = db_session()
    req = get_request_for_user(s, _current_user(), request_id)
    return jsonify(cost_summary(req))


@bp.post("/<int:request_id>/costs")
@require_permission("maintenance.edit")
def cost_create(request_id: int):
    s = db_session()
    u = _current_user()
    req = get_request_for_user(s, u, request_id)
    payload = request.get_json(silent=True) or {}
    errors = validate_cost_item_payload(payload)
    if errors:
        return jsonify({"errors": errors}), 400
    item = create_cost_item(s, req, payload, u)
    s.commit()
    return jsonify(serialize_cost_item(item)), 201


@bp.post("/<int:request_id>/costs/bulk")
@require_permission("maintenance.edit")
def cost_bulk_create(request_id: int):
    s = db_session()
    u = _current_user()
    req = get_request_for_user(s, u, request_id)
    payload = request.get_json(silent=True) or {}
    items = bulk_create_cost_items(s, req, payload.get("items"), u)
    s.commit()
    return jsonify({"data": [serialize_cost_item(c) for c in items], "count": len(items)}), 201


@bp.post("/<int:request_id>/costs/bulk-delete")
@require_permission("maintenance.edit")
def cost_bulk_delete(request_id: int):
    s = db_session()
    u = _current_user()
    req = get_request_for_user(s, u, request_id)
    payload = request.get_json(silent=True) or {}
    deleted = bulk_delete_cost_items(s, req, payload.get("ids"), u)
    s.commit()
    return jsonify({"deleted": deleted})


@bp.route("/<int:request_id>/costs/<int:item_id>", methods=["PUT", "PATCH"])
@require_permission("maintenance.edit")
def cost_update(request_id: int, item_id: int):
    s = db_session()
    u = _current_user()
    req = get_request_for_user(s, u, request_id)
    item = get_cost_item(req, item_id)
    payload = request.get_json(silent=True) or {}
    errors = validate_cost_item_payload(payload, partial=True)
    if errors:
        return jsonify({"errors": errors}), 400
    update_cost_item(s, req, item, payload, u)
    s.commit()
    return jsonify(serialize_cost_item(item))


@bp.delete("/<int:request_id>/costs/<int:item_id>")
@require_permission("maintenance.edit")
def cost_delete(request_id: int, item_id: int):
    s = db_session()
    u = _current_user()
    req = get_request_for_user(s, u, request_id)
    delete_cost_item(s, req, get_cost_item(req, item_id), u)
    s.commit()
    return jsonify({"ok": True})


# ---------- Invoices ----------
@bp.get("/invoices")
@require_permission("maintenance.view")
def invoice_list():
    s = db_session()
    q = list_invoices(s, _current_user(), request.args)
    return jsonify(paginate(q, request.args, serialize_invoice))


@bp.get("/invoices/summary")
@require_permission("maintenance.view")
def invoice_summary_get():
    s = db_session()
    return jsonify(invoice_summary(s, _current_user(), request.args))


@bp.get("/<int:request_id>/invoices")
@require_permission("maintenance.view")
def request_invoices(request_id: int):
    s = db_session()
    req = get_request_for_user(s, _current_user(), request_id)
    return jsonify({"data": [serialize_invoice(i) for i in req.invoices]})


@bp.post("/<int:request_id>/invoices")
@require_permission("maintenance.edit")
def invoice_create(request_id: int):
    s = db_session()
    u = _current_user()
    req = get_request_for_user(s, u, request_id)
    payload = request.get_json(silent=True) if request.is_json else request.form.to_dict()
    payload = payload or {}
    errors = validate_invoice_payload(payload)
    if errors:
        return jsonify({"errors": errors}), 400
    f = request.files.get("file")
    inv = create_invoice(
        s,
        req,
        payload,
        u,
        storage=storage_from_config(current_app.config),
        file_bytes=f.read() if f and f.filename else None,
        filename=f.filename if f else None,
        content_type=(f.mimetype or "application/octet-stream").strip() if f else None,
    )
    s.commit()
    return jsonify(serialize_invoice(inv)), 201


@bp.get("/invoices/<int:invoice_id>")
@require_permission("maintenance.view")
def invoice_detail(invoice_id: int):
    s = db_session()
    return jsonify(serialize_invoice(get_invoice_for_user(s, _current_user(), invoice_id)))


@bp.route("/invoices/<int:invoice_id>", methods=["PUT", "PATCH"])
@require_permission("maintenance.edit")
def invoice_update(invoice_id: int):
    s = db_session()
    u = _current_user()
    inv = get_invoice_for_user(s, u, invoice_id)
    payload = request.get_json(silent=True) or {}
    errors = validate_invoice_payload(payload, partial=True)
    if errors:
        return jsonify({"errors": errors}), 400
    update_invoice(s, inv, payload, u)
    s.commit()
    return jsonify(serialize_invoice(inv))


@bp.delete("/invoices/<int:invoice_id>")
@require_permission("maintenance.edit")
def invoice_delete(invoice_id: int):
    s = db_session()
    u = _current_user()
    inv = get_invoice_for_user(s, u, invoice_id)
    delete_invoice(s, inv, u, storage=storage_from_config(current_app.config))
    s.commit()
    return jsonify({"ok": True})


def _invoice_action(invoice_id: int, fn, *, with_payload: bool = True):
    s = db_session()
    u = _current_user()
    inv = get_invoice_for_user(s, u, invoice_id)
    if with_payload:
        fn(s, inv, request.get_json(silent=True) or {}, u)
    else:
        fn(s, inv, u)
    s.commit()
    return jsonify(serialize_invoice(inv))


@bp.post("/invoices/<int:invoice_id>/submit")
@require_permission("maintenance.edit")
def invoice_submit(invoice_id: int):
    return _invoice_action(invoice_id, submit_invoice, with_payload=False)


@bp.post("/invoices/<int:invoice_id>/start-review")
@require_permission("maintenance.approve")
def invoice_start_review(invoice_id: int):
    return _invoice_action(invoice_id, start_review, with_payload=False)


@bp.post("/invoices/<int:invoice_id>/approve")
@require_permission("maintenance.approve")
def invoice_approve(invoice_id: int):
    return _invoice_action(invoice_id, approve_invoice)


@bp.post("/invoices/<int:invoice_id>/reject")
@require_permission("maintenance.approve")
def invoice_reject(invoice_id: int):
    return _invoice_action(invoice_id, reject_invoice)


@bp.post("/invoices/<int:invoice_id>/mark-paid")
@require_permission("maintenance.approve")
def invoice_mark_paid(invoice_id: int):
    return _invoice_action(invoice_id, mark_invoice_paid)


@bp.post("/invoices/<int:invoice_id>/cancel")
@require_permission("maintenance.edit")
def invoice_cancel(invoice_id: int):
    return _invoice_action(invoice_id, cancel_invoice)


@bp.get("/invoices/<int:invoice_id>/file")
@require_permission("maintenance.view")
def invoice_file(invoice_id: int):
    s = db_session()
    inv = get_invoice_for_user(s, _current_user(), invoice_id)
    if not inv.file_key:
        raise NotFound("Invoice has no attached file.")
    storage = storage_from_config(current_app.config)
    fobj = storage.open(inv.file_key)
    return send_file(
        fobj,
        mimetype=inv.file_mime_type or "application/octet-stream",
        as_attachment=True,
        download_name=inv.file_name or "invoice",
        max_age=0,
    )
