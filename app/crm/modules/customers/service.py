"""
OWNER-SCOPED CUSTOMER SERVICE
=============================

Every customer read or write goes through `owned_customers()` /
`_get_owned()`. No other query against `Customer` is allowed in this module.

INVARIANTS:
- A caller only ever sees rows whose owner_id equals their user id.
- "Does not exist", "belongs to someone else" and "id outside the 64-bit
  range" are the same NotFoundError.
- Email uniqueness is enforced by the store (uq_customers_email) on the
  lowercased address, so it ignores case. Create and
  update run inside a SAVEPOINT and flush, so a collision rolls back only the
  savepoint and surfaces as DuplicateEmailError with no partial write.
- The caller owns the outer transaction (request handler commits).
"""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from collections.abc import Generator
from datetime import datetime
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from app.crm.audit import record_event
from app.crm.errors import DuplicateEmailError, FieldError, NotFoundError, PersistenceError, ValidationError
from app.crm.modules.customers.models import EMAIL_UNIQUE_CONSTRAINT, Customer, CustomerRecord

logger = logging.getLogger(__name__)

CUSTOMER_FIELDS = ("first_name", "last_name", "email", "phone", "address")

EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
PHONE_RE = re.compile(r"[0-9\s\-+()]+")

NAME_MIN_LEN = 2
NAME_MAX_LEN = 100
EMAIL_MAX_LEN = 255
PHONE_MAX_LEN = 20

# Ids are 64-bit integers in every supported store.
MAX_CUSTOMER_ID = 2**63 - 1

_FIELD_LABELS = {
    "first_name": "First name",
    "last_name": "Last name",
    "email": "Email",
    "phone": "Phone number",
    "address": "Address",
}


def clean_customer_payload(payload: dict[str, Any]) -> dict[str, str]:
    """Pick the five customer fields out of a request payload, stripped.

    Email is lowercased so uniqueness is case-insensitive.
    """
    out: dict[str, str] = {}
    for key in CUSTOMER_FIELDS:
        raw = payload.get(key)
        out[key] = "" if raw is None else str(raw).strip()
    out["email"] = out["email"].lower()
    return out


def validate_customer_payload(fields: dict[str, str]) -> list[FieldError]:
    errs: list[FieldError] = []
    for key in CUSTOMER_FIELDS:
        if not fields.get(key):
            errs.append(FieldError(key, f"{_FIELD_LABELS[key]} is required."))

    for key in ("first_name", "last_name"):
        v = fields.get(key) or ""
        if v and not (NAME_MIN_LEN <= len(v) <= NAME_MAX_LEN):
            errs.append(
                FieldError(key, f"{_FIELD_LABELS[key]} must be between {NAME_MIN_LEN} and {NAME_MAX_LEN} characters.")
            )

    email = fields.get("email") or ""
    if email:
        if len(email) > EMAIL_MAX_LEN:
            errs.append(FieldError("email", f"Email must be at most {EMAIL_MAX_LEN} characters."))
        elif not EMAIL_RE.fullmatch(email):
            errs.append(FieldError("email", "Invalid email format."))

    phone = fields.get("phone") or ""
    if phone:
        if len(phone) > PHONE_MAX_LEN:
            errs.append(FieldError("phone", f"Phone number must be at most {PHONE_MAX_LEN} characters."))
        elif not PHONE_RE.fullmatch(phone):
            errs.append(FieldError("phone", "Invalid phone format."))

    return errs


def _validated(payload: dict[str, Any]) -> dict[str, str]:
    fields = clean_customer_payload(payload)
    errs = validate_customer_payload(fields)
    if errs:
        raise ValidationError(errs)
    return fields


def _is_email_conflict(e: IntegrityError) -> bool:
    msg = str(e.orig or e)
    # Postgres names the constraint; SQLite names the column.
    return EMAIL_UNIQUE_CONSTRAINT in msg or "customers.email" in msg


@contextmanager
def _store_errors(action: str) -> Generator[None, None, None]:
    """Translate unexpected store failures into PersistenceError (logged once, here)."""
    try:
        yield
    except IntegrityError as e:
        if _is_email_conflict(e):
            raise DuplicateEmailError() from e
        logger.exception("Integrity failure during %s", action)
        raise PersistenceError() from e
    except SQLAlchemyError as e:
        logger.exception("Store failure during %s", action)
        raise PersistenceError() from e


def owned_customers(s: Session, owner_id: int) -> Query:
    """The only entry point for customer queries: rows owned by `owner_id`."""
    return s.query(Customer).filter(Customer.owner_id == owner_id)


def _get_owned(s: Session, owner_id: int, customer_id: int) -> Customer:
    if not (1 <= customer_id <= MAX_CUSTOMER_ID):
        raise NotFoundError()
    c = owned_customers(s, owner_id).filter(Customer.id == customer_id).one_or_none()
    if c is None:
        raise NotFoundError()
    return c


def create_customer(s: Session, owner_id: int, payload: dict[str, Any]) -> CustomerRecord:
    fields = _validated(payload)
    now = datetime.utcnow()
    with _store_errors("customer.create"):
        with s.begin_nested():
            c = Customer(
                first_name=fields["first_name"],
                last_name=fields["last_name"],
                email=fields["email"],
                phone=fields["phone"],
                address=fields["address"],
                owner_id=owner_id,
                created_at=now,
                updated_at=now,
            )
            s.add(c)
            s.flush()  # unique constraint fires inside the savepoint
        record_event(
            s,
            actor_id=owner_id,
            action="customer.create",
            entity_type="Customer",
            entity_id=str(c.id),
            metadata={"email": c.email},
        )
        s.flush()
    logger.info("Customer %s created (owner_id=%s)", c.id, owner_id)
    return c.to_record()


def list_customers(s: Session, owner_id: int) -> list[CustomerRecord]:
    with _store_errors("customer.list"):
        rows = owned_customers(s, owner_id).order_by(Customer.created_at.desc(), Customer.id.desc()).all()
    return [c.to_record() for c in rows]


def get_customer(s: Session, owner_id: int, customer_id: int) -> CustomerRecord:
    with _store_errors("customer.get"):
        c = _get_owned(s, owner_id, customer_id)
    return c.to_record()


def update_customer(s: Session, owner_id: int, customer_id: int, payload: dict[str, Any]) -> CustomerRecord:
    fields = _validated(payload)
    with _store_errors("customer.update"):
        c = _get_owned(s, owner_id, customer_id)
        before = {k: getattr(c, k) for k in CUSTOMER_FIELDS}
        try:
            with s.begin_nested():
                for k in CUSTOMER_FIELDS:
                    setattr(c, k, fields[k])
                c.updated_at = datetime.utcnow()
                s.flush()
        except IntegrityError:
            # Savepoint is gone; drop the rejected values from the identity map too.
            s.expire(c)
            raise
        fields_changed = [k for k in CUSTOMER_FIELDS if before[k] != fields[k]]
        record_event(
            s,
            actor_id=owner_id,
            action="customer.update",
            entity_type="Customer",
            entity_id=str(c.id),
            metadata={"before": before, "after": fields, "fields_changed": fields_changed},
        )
        s.flush()
    return c.to_record()


def delete_customer(s: Session, owner_id: int, customer_id: int) -> None:
    with _store_errors("customer.delete"):
        c = _get_owned(s, owner_id, customer_id)
        record_event(
            s,
            actor_id=owner_id,
            action="customer.delete",
            entity_type="Customer",
            entity_id=str(c.id),
            metadata={"email": c.email},
        )
        s.delete(c)
        s.flush()
    logger.info("Customer %s deleted (owner_id=%s)", customer_id, owner_id)
