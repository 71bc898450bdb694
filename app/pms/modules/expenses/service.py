from __future__ import annotations

import io
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

import openpyxl
from openpyxl.styles import Font
from sqlalchemy import func

from app.pms.audit import record_event
from app.pms.errors import NotFound, ServiceError
from app.pms.modules.expenses.models import COUNTED_STATUSES, EXPENSE_CATEGORIES, EXPENSE_STATUSES, Expense
from app.pms.modules.maintenance.service import get_request_for_user
from app.pms.modules.payments.service import month_bounds
from app.pms.modules.properties.service import get_property_for_user, owned_property_ids
from app.pms.modules.vendors.service import get_vendor_for_user
from app.pms.utils import (
    apply_updates,
    enum_errors,
    field_errors,
    generate_number,
    model_to_dict,
    parse_date,
    parse_fields,
    pct,
    required_errors,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session
    from app.pms.models import User


EXPENSE_FIELDS = {
    "category": "str",
    "status": "str",
    "amount": "decimal",
    "tax_deductible": "bool",
    "description": "str",
    "expense_date": "date",
    "due_date": "date",
    "paid_date": "date",
    "invoice_number": "str",
    "reference_number": "str",
    "notes": "str",
    "vendor_id": "int",
    "maintenance_request_id": "int",
}

EXPORT_COLUMNS = [
    ("Expense #", "expense_number"),
    ("Date", "expense_date"),
    ("Property", "property_name"),
    ("Category", "category"),
    ("Description", "description"),
    ("Vendor", "vendor_name"),
    ("Amount", "amount"),
    ("Status", "status"),
    ("Tax Deductible", "tax_deductible"),
    ("Paid Date", "paid_date"),
    ("Invoice #", "invoice_number"),
    ("Reference #", "reference_number"),
]

ZERO = Decimal("0.00")


def validate_expense_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    required = {"property_id": "Property", "amount": "Amount", "description": "Description"}
    if partial:
        required = {k: v for k, v in required.items() if k in payload and k != "property_id"}
    errors.extend(required_errors(payload, required))
    type_errors = field_errors(payload, {**EXPENSE_FIELDS, "property_id": "int"})
    errors.extend(type_errors)
    errors.extend(enum_errors(payload, {"category": EXPENSE_CATEGORIES, "status": EXPENSE_STATUSES}))
    if type_errors:
        return errors
    v = parse_fields(payload, EXPENSE_FIELDS)
    if "amount" in payload and (v.get("amount") is None or v["amount"] <= 0):
        errors.append("Amount must be greater than 0.")
    return errors


def serialize_expense(e: Expense) -> dict:
    d = model_to_dict(e)
    d["property_name"] = e.property.name if e.property else None
    d["vendor_name"] = e.vendor.company_name if e.vendor else None
    d["work_order_number"] = e.maintenance_request.request_number if e.maintenance_request else None
    return d


def owned_expenses(s: "Session", user: "User") -> "Query":
    return s.query(Expense).filter(Expense.property_id.in_(owned_property_ids(user)))


def get_expense_for_user(s: "Session", user: "User", expense_id: int) -> Expense:
    expense = owned_expenses(s, user).filter(Expense.id == expense_id).one_or_none()
    if not expense:
        raise NotFound("Expense not found.")
    return expense


def _date_range(args: dict) -> tuple[date | None, date | None]:
    try:
        return (
            parse_date(args.get("start_date") or args.get("date_from")),
            parse_date(args.get("end_date") or args.get("date_to")),
        )
    except ValueError:
        raise ServiceError("Date filters must be YYYY-MM-DD.") from None


def list_expenses(s: "Session", user: "User", args: dict) -> "Query":
    q = owned_expenses(s, user)
    for key, col in (("property_id", Expense.property_id), ("vendor_id", Expense.vendor_id)):
        raw = args.get(key)
        if raw:
            try:
                q = q.filter(col == int(raw))
            except (TypeError, ValueError):
                raise ServiceError(f"{key} must be an integer.") from None
    for key, col in (("category", Expense.category), ("status", Expense.status)):
        raw = (args.get(key) or "").strip()
        if raw:
            q = q.filter(col == raw)
    start, end = _date_range(args)
    if start:
        q = q.filter(Expense.expense_date >= start)
    if end:
        q = q.filter(Expense.expense_date <= end)
    return q.order_by(Expense.expense_date.desc(), Expense.id.desc())


def _check_relations(s: "Session", user: "User", values: dict) -> None:
    if values.get("vendor_id"):
        get_vendor_for_user(s, user, values["vendor_id"])
    if values.get("maintenance_request_id"):
        get_request_for_user(s, user, values["maintenance_request_id"])


def create_expense(s: "Session", payload: dict, user: "User") -> Expense:
    prop = get_property_for_user(s, user, int(payload["property_id"]))
    values = parse_fields(payload, EXPENSE_FIELDS, drop_none=True)
    _check_relations(s, user, values)
    values.setdefault("expense_date", date.today())
    now = datetime.utcnow()
    expense = Expense(
        **values,
        expense_number=generate_number("EXP", now),
        property_id=prop.id,
        created_by_id=user.id,
        created_at=now,
        updated_at=now,
    )
    expense.property = prop
    s.add(expense)
    s.flush()
    record_event(
        s,
        actor=user,
        action="expense.create",
        entity_type="Expense",
        entity_id=str(expense.id),
        metadata={
            "expense_number": expense.expense_number,
            "property_id": prop.id,
            "category": expense.category,
            "amount": str(expense.amount),
        },
    )
    return expense


def update_expense(s: "Session", expense: Expense, payload: dict, user: "User", reason: str | None = None) -> Expense:
    values = parse_fields(payload, EXPENSE_FIELDS)
    _check_relations(s, user, values)
    changes = apply_updates(expense, values)
    expense.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="expense.edit",
        entity_type="Expense",
        entity_id=str(expense.id),
        reason=reason,
        metadata={"expense_number": expense.expense_number, "changes": changes},
    )
    return expense


def mark_expense_paid(s: "Session", expense: Expense, payload: dict, user: "User") -> Expense:
    if expense.status in ("REJECTED", "CANCELLED"):
        raise ServiceError(f"Cannot pay a {expense.status.lower()} expense.")
    try:
        paid_date = parse_date(payload.get("paid_date")) or date.today()
    except ValueError:
        raise ServiceError("paid_date must be YYYY-MM-DD.") from None
    expense.status = "PAID"
    expense.paid_date = paid_date
    ref = (payload.get("reference_number") or "").strip()
    if ref:
        expense.reference_number = ref
    expense.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="expense.mark_paid",
        entity_type="Expense",
        entity_id=str(expense.id),
        metadata={"expense_number": expense.expense_number, "paid_date": paid_date.isoformat()},
    )
    return expense


def delete_expense(s: "Session", expense: Expense, user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="expense.delete",
        entity_type="Expense",
        entity_id=str(expense.id),
        metadata={"expense_number": expense.expense_number, "amount": str(expense.amount)},
    )
    s.delete(expense)


def expense_summary(s: "Session", user: "User", args: dict, today: date | None = None) -> dict:
    """Approved and paid spend for a period (current month unless start/end are given)."""
    start, end = _date_range(args)
    if not start and not end:
        start, nxt = month_bounds(today or date.today())
        q = owned_expenses(s, user).filter(Expense.expense_date >= start, Expense.expense_date < nxt)
        end = date.fromordinal(nxt.toordinal() - 1)
    else:
        q = owned_expenses(s, user)
        if start:
            q = q.filter(Expense.expense_date >= start)
        if end:
            q = q.filter(Expense.expense_date <= end)
    property_id = args.get("property_id")
    if property_id:
        q = q.filter(Expense.property_id == int(property_id))
    expenses = q.filter(Expense.status.in_(COUNTED_STATUSES)).all()

    by_category: dict[str, dict] = {}
    for e in expenses:
        bucket = by_category.setdefault(e.category, {"amount": ZERO, "count": 0})
        bucket["amount"] += e.amount
        bucket["count"] += 1
    total = sum((e.amount for e in expenses), ZERO)
    deductible = sum((e.amount for e in expenses if e.tax_deductible), ZERO)
    return {
        "start_date": start.isoformat() if start else None,
        "end_date": end.isoformat() if end else None,
        "total_amount": float(total),
        "count": len(expenses),
        "tax_deductible_amount": float(deductible),
        "by_category": [
            {"category": cat, "amount": float(b["amount"]), "count": b["count"], "percent": pct(float(b["amount"]), float(total))}
            for cat, b in sorted(by_category.items(), key=lambda kv: kv[1]["amount"], reverse=True)
        ],
    }


def _period_total(s: "Session", user: "User", start: date, nxt: date) -> Decimal:
    total = (
        owned_expenses(s, user)
        .with_entities(func.coalesce(func.sum(Expense.amount), 0))
        .filter(
            Expense.status.in_(COUNTED_STATUSES),
            Expense.expense_date >= start,
            Expense.expense_date < nxt,
        )
        .scalar()
    )
    return Decimal(total or 0)


def expense_stats(s: "Session", user: "User", today: date | None = None) -> dict:
    today = today or date.today()
    this_start, next_start = month_bounds(today)
    last_start, _ = month_bounds(date.fromordinal(this_start.toordinal() - 1))
    current = _period_total(s, user, this_start, next_start)
    last = _period_total(s, user, last_start, this_start)
    pending = owned_expenses(s, user).filter(Expense.status == "PENDING")
    pending_amount = pending.with_entities(func.coalesce(func.sum(Expense.amount), 0)).scalar()
    change = pct(float(current - last), float(last)) if last else (100.0 if current else 0.0)
    return {
        "current_month_total": float(current),
        "last_month_total": float(last),
        "month_over_month_change": change,
        "pending_amount": float(pending_amount or 0),
        "pending_count": pending.count(),
    }


def export_expenses_xlsx(expenses: list[Expense]) -> bytes:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Expenses"
    ws.append([header for header, _key in EXPORT_COLUMNS])
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for e in expenses:
        row = serialize_expense(e)
        ws.append([row.get(key) for _header, key in EXPORT_COLUMNS])
    ws.freeze_panes = "A2"
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()
