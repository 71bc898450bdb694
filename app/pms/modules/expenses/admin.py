from __future__ import annotations

import io
from datetime import datetime

from flask import Blueprint, g, jsonify, request, send_file

from app.pms.db import db_session
from app.pms.models import User
from app.pms.modules.expenses.service import (
    create_expense,
    delete_expense,
    expense_stats,
    expense_summary,
    export_expenses_xlsx,
    get_expense_for_user,
    list_expenses,
    mark_expense_paid,
    serialize_expense,
    update_expense,
    validate_expense_payload,
)
from app.pms.pagination import paginate
from app.pms.rbac import require_permission

bp = Blueprint("expenses", __name__)

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("")
@require_permission("expenses.view")
def expense_list():
    s = db_session()
    q = list_expenses(s, _current_user(), request.args)
    return jsonify(paginate(q, request.args, serialize_expense))


@bp.get("/summary")
@require_permission("expenses.view")
def expense_summary_view():
    s = db_session()
    return jsonify(expense_summary(s, _current_user(), request.args))


@bp.get("/stats")
@require_permission("expenses.view")
def expense_stats_view():
    s = db_session()
    return jsonify(expense_stats(s, _current_user()))


@bp.get("/export")
@require_permission("expenses.view")
def expense_export():
    s = db_session()
    expenses = list_expenses(s, _current_user(), request.args).all()
    data = export_expenses_xlsx(expenses)
    filename = f"expenses-{datetime.utcnow():%Y-%m-%d}.xlsx"
    return send_file(io.BytesIO(data), mimetype=XLSX_MIMETYPE, as_attachment=True, download_name=filename, max_age=0)


@bp.post("")
@require_permission("expenses.edit")
def expense_create():
    s = db_session()
    u = _current_user()
    payload = request.get_json(silent=True) or {}
    errors = validate_expense_payload(payload)
    if errors:
        return jsonify({"errors": errors}), 400
    expense = create_expense(s, payload, u)
    s.commit()
    return jsonify(serialize_expense(expense)), 201


@bp.get("/<int:expense_id>")
@require_permission("expenses.view")
def expense_detail(expense_id: int):
    s = db_session()
    return jsonify(serialize_expense(get_expense_for_user(s, _current_user(), expense_id)))


@bp.route("/<int:expense_id>", methods=["PUT", "PATCH"])
@require_permission("expenses.edit")
def expense_update(expense_id: int):
    s = db_session()
    u = _current_user()
    expense = get_expense_for_user(s, u, expense_id)
    payload = request.get_json(silent=True) or {}
    errors = validate_expense_payload(payload, partial=True)
    if errors:
        return jsonify({"errors": errors}), 400
    update_expense(s, expense, payload, u, reason=payload.get("reason"))
    s.commit()
    return jsonify(serialize_expense(expense))


@bp.post("/<int:expense_id>/mark-paid")
@require_permission("expenses.edit")
def expense_mark_paid(expense_id: int):
    s = db_session()
    u = _current_user()
    expense = get_expense_for_user(s, u, expense_id)
    mark_expense_paid(s, expense, request.get_json(silent=True) or {}, u)
    s.commit()
    return jsonify(serialize_expense(expense))


@bp.delete("/<int:expense_id>")
@require_permission("expenses.edit")
def expense_delete(expense_id: int):
    s = db_session()
    u = _current_user()
    delete_expense(s, get_expense_for_user(s, u, expense_id), u)
    s.commit()
    return jsonify({"ok": True})
