"""JSON request handlers around :class:`WorkOrderService`.

The caller's identity comes from headers set by the auth proxy in front of
this app; it is never verified here.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict
from datetime import datetime
from decimal import Decimal

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException, Unauthorized

from .db import DbError
from .domain import Actor, ApplianceModel, PartDirectoryEntry, WorkOrder
from .errors import ComputationError, ConflictError, NotFoundError, ValidationError
from .lifecycle import display_status, effective_state, lint_warnings
from .services.work_order_service import PartLineInput, WorkOrderInput, WorkOrderService

logger = logging.getLogger(__name__)

_INPUT_TEXT_FIELDS = (
    "appliance_brand",
    "appliance_type",
    "problem_description",
    "customer_name",
    "customer_phone",
    "customer_email",
    "customer_address",
    "customer_address_line_2",
    "customer_city",
    "customer_state",
    "customer_zip_code",
    "appliance_model",
    "serial_number",
    "warranty_status",
    "service_type",
    "initial_diagnosis",
    "parts_needed",
    "estimated_time",
    "technician_notes",
)


def _jsonable(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def work_order_to_dict(order: WorkOrder) -> dict:
    d = _jsonable(asdict(order))
    d["status_label"] = display_status(order.status)
    d["effective_state"] = effective_state(order)
    d["warnings"] = lint_warnings(order)
    return d


def part_entry_to_dict(entry: PartDirectoryEntry) -> dict:
    return _jsonable(asdict(entry))


def appliance_model_to_dict(model: ApplianceModel) -> dict:
    return asdict(model)


def _int_field(value, name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer.")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and re.fullmatch(r"-?[0-9]+", value.strip()):
        return int(value.strip())
    raise ValidationError(f"{name} must be an integer, got {value!r}.")


def _optional_text(body: dict, name: str):
    value = body.get(name)
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{name} must be a string.")
    return value


def parse_work_order_input(body: dict) -> WorkOrderInput:
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object.")

    raw_parts = body.get("parts")
    if raw_parts is None:
        raw_parts = []
    if not isinstance(raw_parts, list):
        raise ValidationError("parts must be a list.")

    parts = []
    for i, p in enumerate(raw_parts):
        if not isinstance(p, dict):
            raise ValidationError(f"parts[{i}] must be an object.")
        parts.append(
            PartLineInput(
                part_name=str(p.get("part_name") or ""),
                part_number=str(p.get("part_number") or ""),
                unit_cost=p.get("unit_cost", p.get("part_cost")),
                quantity=_int_field(p.get("quantity", 1), f"parts[{i}].quantity"),
                markup_percentage=p.get("markup_percentage"),
            )
        )

    text = {name: str(body[name]) for name in _INPUT_TEXT_FIELDS if body.get(name) is not None}

    return WorkOrderInput(
        **text,
        labor_level=_int_field(body.get("labor_level", 0), "labor_level"),
        diagnostic_fee_type=body.get("diagnostic_fee_type"),
        parts=parts,
    )


def current_actor() -> Actor:
    user_id = (request.headers.get("X-User-Id") or "").strip()
    if not user_id:
        raise Unauthorized("X-User-Id header is required.")
    return Actor(
        user_id=user_id,
        display_name=request.headers.get("X-User-Name") or None,
        email=request.headers.get("X-User-Email") or None,
    )


def create_app(db, order_service: WorkOrderService) -> Flask:
    app = Flask(__name__)

    @app.errorhandler(ValidationError)
    def _validation_error(e):
        return jsonify(error="validation_error", message=str(e)), 400

    @app.errorhandler(NotFoundError)
    def _not_found(e):
        return jsonify(error="not_found", message=str(e)), 404

    @app.errorhandler(ConflictError)
    def _conflict(e):
        return jsonify(error="conflict", message=str(e)), 409

    @app.errorhandler(ComputationError)
    def _computation_error(e):
        logger.error("computation error: %s", e)
        return jsonify(error="computation_error", message=str(e)), 500

    @app.errorhandler(DbError)
    def _db_error(e):
        logger.error("database error: %s", e)
        return jsonify(error="database_unavailable", message=f"DB error: {e}"), 503

    @app.errorhandler(HTTPException)
    def _http_error(e):
        return jsonify(error=e.name.lower().replace(" ", "_"), message=e.description), e.code

    @app.get("/pricing")
    def pricing():
        table = order_service.pricing
        return jsonify(
            version=table.version,
            default_markup=str(table.default_markup),
            labor_levels=[
                {"level": level, "label": table.labor_labels.get(level, f"Level {level}"), "cost": str(cost)}
                for level, cost in sorted(table.labor.items())
            ],
            diagnostic_fees=[{"type": k, "cost": str(v)} for k, v in table.diagnostic_fees.items()],
        )

    @app.post("/work-orders")
    def work_orders_create():
        actor = current_actor()
        data = parse_work_order_input(request.get_json(silent=True))
        with db.transaction() as conn:
            order = order_service.create_work_order(conn, actor=actor, data=data)
        return jsonify(work_order_to_dict(order)), 201

    @app.post("/work-orders/public")
    def work_orders_create_public():
        actor = current_actor()
        data = parse_work_order_input(request.get_json(silent=True))
        with db.transaction() as conn:
            order = order_service.create_work_order(conn, actor=actor, data=data, public=True)
        return jsonify(work_order_to_dict(order)), 201

    @app.get("/work-orders")
    def work_orders_list():
        actor = current_actor()
        view = request.args.get("view", "active")
        with db.session() as conn:
            orders = order_service.list_view(conn, actor=actor, view=view)
        return jsonify(view=view, work_orders=[work_order_to_dict(o) for o in orders])

    @app.get("/work-orders/<work_order_id>")
    def work_orders_get(work_order_id):
        actor = current_actor()
        with db.session() as conn:
            order = order_service.get_work_order(conn, actor=actor, work_order_id=work_order_id)
        return jsonify(work_order_to_dict(order))

    @app.put("/work-orders/<work_order_id>")
    def work_orders_update(work_order_id):
        actor = current_actor()
        data = parse_work_order_input(request.get_json(silent=True))
        with db.transaction() as conn:
            order = order_service.update_work_order(conn, actor=actor, work_order_id=work_order_id, data=data)
        return jsonify(work_order_to_dict(order))

    @app.post("/work-orders/<work_order_id>/claim")
    def work_orders_claim(work_order_id):
        actor = current_actor()
        body = request.get_json(silent=True)
        data = parse_work_order_input(body) if body else None
        with db.transaction() as conn:
            order = order_service.claim_work_order(conn, actor=actor, work_order_id=work_order_id, data=data)
        return jsonify(work_order_to_dict(order))

    @app.post("/work-orders/<work_order_id>/status")
    def work_orders_status(work_order_id):
        actor = current_actor()
        body = request.get_json(silent=True) or {}
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object.")
        status = _optional_text(body, "status")
        reason = _optional_text(body, "reason")
        with db.transaction() as conn:
            order = order_service.change_status(
                conn,
                actor=actor,
                work_order_id=work_order_id,
                status=status or "",
                reason=reason,
            )
        return jsonify(work_order_to_dict(order))

    @app.post("/work-orders/<work_order_id>/job-completion")
    def work_orders_job_completion(work_order_id):
        actor = current_actor()
        body = request.get_json(silent=True) or {}
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object.")
        job_completion = _optional_text(body, "job_completion")
        if job_completion is None:
            raise ValidationError("job_completion is required.")
        with db.transaction() as conn:
            order = order_service.set_job_completion(
                conn,
                actor=actor,
                work_order_id=work_order_id,
                job_completion=job_completion,
            )
        return jsonify(work_order_to_dict(order))

    @app.post("/work-orders/<work_order_id>/reschedule")
    def work_orders_reschedule(work_order_id):
        actor = current_actor()
        with db.transaction() as conn:
            order = order_service.reschedule(conn, actor=actor, work_order_id=work_order_id)
        return jsonify(work_order_to_dict(order))

    @app.get("/parts")
    def parts_search():
        current_actor()
        term = request.args.get("q", "")
        with db.session() as conn:
            entries = order_service.search_parts(conn, term=term)
        return jsonify(parts=[part_entry_to_dict(e) for e in entries])

    @app.get("/appliance-models")
    def appliance_models_list():
        current_actor()
        brand = request.args.get("brand", "")
        with db.session() as conn:
            models = order_service.appliance_models(conn, brand=brand)
        return jsonify(appliance_models=[appliance_model_to_dict(m) for m in models])

    return app
