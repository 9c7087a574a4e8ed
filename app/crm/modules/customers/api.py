from __future__ import annotations

import io

from flask import Blueprint, jsonify, send_file

from app.crm.audit import record_event
from app.crm.auth import current_user, require_user
from app.crm.db import db_session
from app.crm.modules.customers.export import export_filename, to_csv, to_pdf
from app.crm.modules.customers.service import (
    create_customer,
    delete_customer,
    get_customer,
    list_customers,
    update_customer,
)
from app.crm.utils import request_payload

bp = Blueprint("customers", __name__)


@bp.get("/customers")
@require_user
def customers_list():
    customers = list_customers(db_session(), current_user().id)
    return jsonify({"customers": [c.to_dict() for c in customers], "count": len(customers)})


@bp.post("/customers")
@require_user
def customers_create():
    s = db_session()
    c = create_customer(s, current_user().id, request_payload())
    s.commit()
    return jsonify({"message": "Customer created successfully", "customer": c.to_dict()}), 201


@bp.get("/customers/<int:customer_id>")
@require_user
def customer_detail(customer_id: int):
    c = get_customer(db_session(), current_user().id, customer_id)
    return jsonify({"customer": c.to_dict()})


@bp.put("/customers/<int:customer_id>")
@require_user
def customer_update(customer_id: int):
    s = db_session()
    c = update_customer(s, current_user().id, customer_id, request_payload())
    s.commit()
    return jsonify({"message": "Customer updated successfully", "customer": c.to_dict()})


@bp.delete("/customers/<int:customer_id>")
@require_user
def customer_delete(customer_id: int):
    s = db_session()
    delete_customer(s, current_user().id, customer_id)
    s.commit()
    return jsonify({"message": "Customer deleted successfully", "id": customer_id})


def _send_export(data: bytes, *, ext: str, mimetype: str, row_count: int):
    u = current_user()
    s = db_session()
    record_event(
        s,
        actor_id=u.id,
        action=f"customer.export_{ext}",
        entity_type="Customer",
        entity_id="export",
        metadata={"row_count": row_count},
    )
    s.commit()
    return send_file(
        io.BytesIO(data),
        mimetype=mimetype,
        as_attachment=True,
        download_name=export_filename(ext),
        max_age=0,
    )


@bp.get("/customers/export/csv")
@require_user
def customers_export_csv():
    customers = list_customers(db_session(), current_user().id)
    return _send_export(to_csv(customers), ext="csv", mimetype="text/csv", row_count=len(customers))


@bp.get("/customers/export/pdf")
@require_user
def customers_export_pdf():
    customers = list_customers(db_session(), current_user().id)
    return _send_export(to_pdf(customers), ext="pdf", mimetype="application/pdf", row_count=len(customers))
