from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from app.pms.audit import record_event
from app.pms.errors import NotFound, ServiceError
from app.pms.modules.maintenance.models import COST_TYPE_LABELS, COST_TYPES, CostLineItem, MaintenanceRequest
from app.pms.utils import apply_updates, enum_errors, field_errors, model_to_dict, parse_fields, required_errors

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.pms.models import User


COST_FIELDS = {
    "type": "str",
    "description": "str",
    "quantity": "decimal",
    "unit_cost": "decimal",
    "part_number": "str",
    "supplier": "str",
    "warranty": "str",
    "warranty_expiry": "date",
    "labor_hours": "decimal",
    "labor_rate": "decimal",
    "worker_id": "int",
    "charge_to_tenant": "bool",
    "tenant_charge_amount": "decimal",
    "notes": "str",
}

MAX_BULK_ITEMS = 50
ZERO = Decimal("0.00")


def validate_cost_item_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    required = {"description": "Description", "unit_cost": "Unit cost"}
    if partial:
        required = {k: v for k, v in required.items() if k in payload}
    errors.extend(required_errors(payload, required))
    type_errors = field_errors(payload, COST_FIELDS)
    errors.extend(type_errors)
    errors.extend(enum_errors(payload, {"type": COST_TYPES}))
    if type_errors:
        return errors
    v = parse_fields(payload, COST_FIELDS)
    if "quantity" in payload and (v.get("quantity") is None or v["quantity"] <= 0):
        errors.append("Quantity must be greater than 0.")
    if v.get("unit_cost") is not None and v["unit_cost"] < 0:
        errors.append("Unit cost must not be negative.")
    if v.get("tenant_charge_amount") is not None and v["tenant_charge_amount"] < 0:
        errors.append("Tenant charge amount must not be negative.")
    return errors


def serialize_cost_item(item: CostLineItem) -> dict:
    d = model_to_dict(item)
    d["type_label"] = COST_TYPE_LABELS.get(item.type, item.type)
    return d


def get_cost_item(req: MaintenanceRequest, item_id: int) -> CostLineItem:
    item = next((c for c in req.cost_items if c.id == item_id), None)
    if not item:
        raise NotFound("Cost item not found.")
    return item


def list_cost_items(req: MaintenanceRequest, args: dict) -> list[CostLineItem]:
    cost_type = (args.get("type") or "").strip()
    return [c for c in req.cost_items if not cost_type or c.type == cost_type]


def sync_request_costs(req: MaintenanceRequest) -> None:
    """actual_cost = sum of totals; tenant_charge = sum over charged items (null when none)."""
    items = list(req.cost_items)
    req.actual_cost = sum((c.total_cost or ZERO for c in items), ZERO)
    charged = [c for c in items if c.charge_to_tenant]
    req.tenant_charge = sum((c.tenant_charge_amount or ZERO for c in charged), ZERO) if charged else None
    req.updated_at = datetime.utcnow()


def build_cost_item(req: MaintenanceRequest, payload: dict, *, invoice_id: int | None = None) -> CostLineItem:
    values = parse_fields(payload, COST_FIELDS, drop_none=True)
    quantity = values.pop("quantity", Decimal("1"))
    unit_cost = values.pop("unit_cost", ZERO)
    total = (quantity * unit_cost).quantize(Decimal("0.01"))
    charge = values.pop("charge_to_tenant", False)
    charge_amount = values.pop("tenant_charge_amount", None)
    now = datetime.utcnow()
    return CostLineItem(
        **values,
        request_id=req.id,
        quantity=quantity,
        unit_cost=unit_cost,
        total_cost=total,
        charge_to_tenant=charge,
        tenant_charge_amount=(charge_amount if charge_amount is not None else total) if charge else None,
        invoice_id=invoice_id,
        created_at=now,
        updated_at=now,
    )


def create_cost_item(s: "Session", req: MaintenanceRequest, payload: dict, user: "User") -> CostLineItem:
    item = build_cost_item(req, payload)
    req.cost_items.append(item)
    s.flush()
    sync_request_costs(req)
    record_event(
        s,
        actor=user,
        action="maintenance.cost_add",
        entity_type="MaintenanceRequest",
        entity_id=str(req.id),
        metadata={"cost_item_id": item.id, "type": item.type, "total_cost": str(item.total_cost)},
    )
    return item


def bulk_create_cost_items(s: "Session", req: MaintenanceRequest, items: list, user: "User") -> list[CostLineItem]:
    if not isinstance(items, list) or not items:
        raise ServiceError("At least one cost item is required.")
    if len(items) > MAX_BULK_ITEMS:
        raise ServiceError(f"At most {MAX_BULK_ITEMS} cost items can be added at once.")
    errors: list[str] = []
    for idx, payload in enumerate(items, start=1):
        if not isinstance(payload, dict):
            errors.append(f"Item {idx}: must be an object.")
            continue
        errors.extend(f"Item {idx}: {e}" for e in validate_cost_item_payload(payload))
    if errors:
        raise ServiceError("; ".join(errors))

    created = [build_cost_item(req, payload) for payload in items]
    req.cost_items.extend(created)
    s.flush()
    sync_request_costs(req)
    record_event(
        s,
        actor=user,
        action="maintenance.cost_bulk_add",
        entity_type="MaintenanceRequest",
        entity_id=str(req.id),
        metadata={"count": len(created), "cost_item_ids": [c.id for c in created]},
    )
    return created


def update_cost_item(s: "Session", req: MaintenanceRequest, item: CostLineItem, payload: dict, user: "User") -> CostLineItem:
    values = parse_fields(payload, COST_FIELDS)
    changes = apply_updates(item, values)

    if "quantity" in changes or "unit_cost" in changes:
        new_total = (item.quantity * item.unit_cost).quantize(Decimal("0.01"))
        if new_total != item.total_cost:
            changes["total_cost"] = {"old": str(item.total_cost), "new": str(new_total)}
            item.total_cost = new_total

    if "charge_to_tenant" in payload:
        if item.charge_to_tenant and values.get("tenant_charge_amount") is None:
            item.tenant_charge_amount = item.total_cost
        elif not item.charge_to_tenant:
            item.tenant_charge_amount = None

    item.updated_at = datetime.utcnow()
    sync_request_costs(req)
    record_event(
        s,
        actor=user,
        action="maintenance.cost_edit",
        entity_type="MaintenanceRequest",
        entity_id=str(req.id),
        metadata={"cost_item_id": item.id, "changes": changes},
    )
    return item


def delete_cost_item(s: "Session", req: MaintenanceRequest, item: CostLineItem, user: "User") -> None:
    req.cost_items.remove(item)
    s.flush()
    sync_request_costs(req)
    record_event(
        s,
        actor=user,
        action="maintenance.cost_delete",
        entity_type="MaintenanceRequest",
        entity_id=str(req.id),
        metadata={"cost_item_id": item.id, "total_cost": str(item.total_cost)},
    )


def bulk_delete_cost_items(s: "Session", req: MaintenanceRequest, ids: list, user: "User") -> int:
    if not isinstance(ids, list) or not ids:
        raise ServiceError("ids must be a non-empty list.")
    try:
        wanted = {int(i) for i in ids}
    except (TypeError, ValueError):
        raise ServiceError("ids must be integers.") from None
    items = [get_cost_item(req, i) for i in sorted(wanted)]
    for item in items:
        req.cost_items.remove(item)
    s.flush()
    sync_request_costs(req)
    record_event(
        s,
        actor=user,
        action="maintenance.cost_bulk_delete",
        entity_type="MaintenanceRequest",
        entity_id=str(req.id),
        metadata={"cost_item_ids": sorted(wanted)},
    )
    return len(items)


def cost_summary(req: MaintenanceRequest) -> dict:
    items = list(req.cost_items)
    by_type: dict[str, dict] = {}
    for item in items:
        row = by_type.setdefault(item.type, {"type": item.type, "label": COST_TYPE_LABELS.get(item.type, item.type), "total": ZERO, "count": 0})
        row["total"] += item.total_cost or ZERO
        row["count"] += 1

    def _type_total(t: str) -> Decimal:
        return by_type[t]["total"] if t in by_type else ZERO

    total = sum((c.total_cost or ZERO for c in items), ZERO)
    labor, parts, materials = _type_total("LABOR"), _type_total("PARTS"), _type_total("MATERIALS")
    tenant_charges = sum((c.tenant_charge_amount or ZERO for c in items if c.charge_to_tenant), ZERO)
    return {
        "total_cost": float(total),
        "labor_cost": float(labor),
        "parts_cost": float(parts),
        "materials_cost": float(materials),
        "other_costs": float(total - labor - parts - materials),
        "tenant_charges": float(tenant_charges),
        "net_cost": float(total - tenant_charges),
        "item_count": len(items),
        "by_type": [
            {**row, "total": float(row["total"])}
            for t, row in sorted(by_type.items(), key=lambda kv: COST_TYPES.index(kv[0]) if kv[0] in COST_TYPES else 99)
        ],
    }
