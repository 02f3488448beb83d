# Overview: Flask API routes for categories, customers, suppliers, staff and discounts.

# backend/zors/routes/directory.py
"""
Directory CRUD routes (no stock side effects).

Each resource gets its own blueprint built by make_directory_blueprint():
    GET    /api/<resource>            list (optional ?search=)
    GET    /api/<resource>/<id>       fetch one
    POST   /api/<resource>            create       (write_roles)
    PUT    /api/<resource>/<id>       patch        (write_roles)
    DELETE /api/<resource>/<id>       delete       (write_roles)

SECURITY: reads need any authenticated user; writes need one of write_roles.
"""

from flask import Blueprint, request, current_app

from ..services import directory_service
from ..services.directory_service import DirectoryResource, RecordNotFoundError
from ..validation import ValidationError, ConflictError
from ..decorators import require_auth, require_role


def make_directory_blueprint(
    name: str,
    resource: DirectoryResource,
    *,
    write_roles: tuple[str, ...] | None = None,
) -> Blueprint:
    bp = Blueprint(name, __name__, url_prefix=f"/api/{name}")
    label = resource.label

    def _guard_write(f):
        f = require_role(*write_roles)(f) if write_roles else f
        return require_auth(f)

    @bp.get("")
    @require_auth
    def list_route():
        items = directory_service.list_records(resource, search=request.args.get("search"))
        return {"items": items, "count": len(items)}

    @bp.get("/<int:record_id>")
    @require_auth
    def get_route(record_id: int):
        record = directory_service.get_record(resource, record_id)
        if not record:
            return {"error": f"{label} not found"}, 404
        return record.to_dict()

    @bp.post("")
    @_guard_write
    def create_route():
        payload = request.get_json(silent=True) or {}
        try:
            record = directory_service.create_record(resource, payload)
        except ValidationError as e:
            return {"error": str(e)}, 400
        except ConflictError as e:
            return {"error": str(e)}, 409
        except Exception:
            current_app.logger.exception("Failed to create %s", label.lower())
            return {"error": "Internal server error"}, 500
        return record.to_dict(), 201

    @bp.put("/<int:record_id>")
    @_guard_write
    def update_route(record_id: int):
        payload = request.get_json(silent=True) or {}
        try:
            record = directory_service.update_record(resource, record_id, payload)
        except RecordNotFoundError as e:
            return {"error": str(e)}, 404
        except ValidationError as e:
            return {"error": str(e)}, 400
        except ConflictError as e:
            return {"error": str(e)}, 409
        except Exception:
            current_app.logger.exception("Failed to update %s", label.lower())
            return {"error": "Internal server error"}, 500
        return record.to_dict(), 200

    @bp.delete("/<int:record_id>")
    @_guard_write
    def delete_route(record_id: int):
        try:
            directory_service.delete_record(resource, record_id)
        except RecordNotFoundError as e:
            return {"error": str(e)}, 404
        except Exception:
            current_app.logger.exception("Failed to delete %s", label.lower())
            return {"error": "Internal server error"}, 500
        return {"ok": True}, 200

    return bp


categories_bp = make_directory_blueprint(
    "categories", directory_service.CATEGORIES, write_roles=("admin", "manager")
)
customers_bp = make_directory_blueprint("customers", directory_service.CUSTOMERS)
suppliers_bp = make_directory_blueprint(
    "suppliers", directory_service.SUPPLIERS, write_roles=("admin", "manager")
)
staff_bp = make_directory_blueprint("staff", directory_service.STAFF, write_roles=("admin", "manager"))
discounts_bp = make_directory_blueprint("discounts", directory_service.DISCOUNTS, write_roles=("admin",))


@discounts_bp.get("/global")
@require_auth
def global_discount_route():
    discount = directory_service.get_global_discount()
    return {"discount": discount.to_dict() if discount else None}
