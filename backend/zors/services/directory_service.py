# Overview: Pass-through CRUD for categories, customers, suppliers, staff and discounts.

"""
Directory Service

These records carry no stock side effect. Each resource is described by a
DirectoryResource (model + validation policy + optional business rules), so
the create/update/delete flow is the same for all of them.

DISCOUNTS: at most one discount has is_global=True. Saving a global discount
clears the flag on every other row in the same commit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Category, Customer, Discount, Staff, Supplier
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    enforce_rules_discount,
    enforce_rules_staff,
    validate_payload,
)


class RecordNotFoundError(Exception):
    """Raised when a directory record is not found."""
    pass


@dataclass(frozen=True)
class DirectoryResource:
    model: type
    label: str
    policy: ModelValidationPolicy
    search_fields: tuple[str, ...] = ("name",)
    rules: Callable[[dict], None] | None = None


CATEGORIES = DirectoryResource(
    model=Category,
    label="Category",
    policy=ModelValidationPolicy(writable_fields={"name"}, required_on_create={"name"}),
)

CUSTOMERS = DirectoryResource(
    model=Customer,
    label="Customer",
    policy=ModelValidationPolicy(
        writable_fields={"name", "phone", "email", "address"},
        required_on_create={"name", "phone"},
    ),
    search_fields=("name", "phone", "email"),
)

SUPPLIERS = DirectoryResource(
    model=Supplier,
    label="Supplier",
    policy=ModelValidationPolicy(
        writable_fields={"name", "contact_person", "phone", "email", "address", "city"},
        required_on_create={"name", "phone"},
    ),
    search_fields=("name", "contact_person", "city"),
)

STAFF = DirectoryResource(
    model=Staff,
    label="Staff member",
    policy=ModelValidationPolicy(
        writable_fields={"name", "email", "phone", "position", "join_date", "salary_cents", "is_active"},
        required_on_create={"name", "email", "phone", "position", "join_date"},
    ),
    search_fields=("name", "email", "position"),
    rules=enforce_rules_staff,
)

DISCOUNTS = DirectoryResource(
    model=Discount,
    label="Discount",
    policy=ModelValidationPolicy(
        writable_fields={"name", "percentage", "is_global"},
        required_on_create={"name", "percentage"},
    ),
    rules=enforce_rules_discount,
)


def list_records(resource: DirectoryResource, *, search: str | None = None) -> list[dict]:
    model = resource.model
    q = db.session.query(model)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(db.or_(*[getattr(model, f).ilike(pattern) for f in resource.search_fields]))
    rows = q.order_by(model.name.asc(), model.id.asc()).all()
    return [r.to_dict() for r in rows]


def get_record(resource: DirectoryResource, record_id: int):
    return db.session.get(resource.model, record_id)


def _require_record(resource: DirectoryResource, record_id: int):
    record = db.session.get(resource.model, record_id)
    if record is None:
        raise RecordNotFoundError(f"{resource.label} not found")
    return record


def _clear_other_global_discounts(discount: Discount) -> None:
    q = db.session.query(Discount).filter(Discount.is_global.is_(True))
    if discount.id is not None:
        q = q.filter(Discount.id != discount.id)
    q.update({Discount.is_global: False}, synchronize_session=False)


def _save(resource: DirectoryResource, record) -> None:
    if isinstance(record, Discount) and record.is_global:
        db.session.flush()
        _clear_other_global_discounts(record)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"{resource.label} already exists")


def create_record(resource: DirectoryResource, payload: dict):
    """
    Validate and insert a record.

    Raises:
        ValidationError: bad payload
        ConflictError: unique field already taken (category name, staff email)
    """
    patch = validate_payload(model=resource.model, payload=payload, policy=resource.policy, partial=False)
    if resource.rules:
        resource.rules(patch)

    record = resource.model(**patch)
    db.session.add(record)
    _save(resource, record)
    return record


def update_record(resource: DirectoryResource, record_id: int, payload: dict):
    """
    Patch an existing record.

    Raises:
        RecordNotFoundError, ValidationError, ConflictError
    """
    patch = validate_payload(model=resource.model, payload=payload, policy=resource.policy, partial=True)
    if resource.rules:
        resource.rules(patch)

    record = _require_record(resource, record_id)
    for k, v in patch.items():
        setattr(record, k, v)
    _save(resource, record)
    return record


def delete_record(resource: DirectoryResource, record_id: int) -> None:
    record = _require_record(resource, record_id)
    db.session.delete(record)
    db.session.commit()


def get_global_discount() -> Discount | None:
    return db.session.query(Discount).filter(Discount.is_global.is_(True)).first()
