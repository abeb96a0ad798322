import math
from datetime import datetime
from typing import Any, Optional
from bson import ObjectId
from fastapi.responses import JSONResponse


def serialize_mongo_doc(doc):
    """Recursively convert ObjectIds and datetimes in a MongoDB document."""
    if not doc:
        return doc

    if isinstance(doc, list):
        return [serialize_mongo_doc(d) for d in doc]

    if isinstance(doc, dict):
        clean = {}
        for k, v in doc.items():
            if isinstance(v, ObjectId):
                clean[k] = str(v)
            elif isinstance(v, datetime):
                clean[k] = v.isoformat()
            elif isinstance(v, (dict, list)):
                clean[k] = serialize_mongo_doc(v)
            else:
                clean[k] = v
        return clean

    if isinstance(doc, ObjectId):
        return str(doc)

    return doc


def as_object_id(value: Any) -> Any:
    """ObjectId for valid id strings, anything else passes through unchanged."""
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def same_id(a: Any, b: Any) -> bool:
    """Compare two references (ObjectId or str). Missing never matches."""
    if a is None or b is None:
        return False
    return str(a) == str(b)


def pagination_meta(total: int, page: int, limit: int) -> dict:
    return {
        "total": total,
        "page": page,
        "pages": math.ceil(total / limit) if limit else 0,
        "limit": limit,
    }


def success_response(
    message: str = "Success",
    code: int = 200,
    **payload: Any,
) -> JSONResponse:
    """Standard success JSON response. Extra keyword args become top-level keys."""
    content = {"success": True, "message": message}
    content.update(payload)
    return JSONResponse(status_code=code, content=content)


def error_response(
    message: str,
    code: int = 400,
    errors: Optional[Any] = None,
) -> JSONResponse:
    """Standard error JSON response."""
    content = {"success": False, "message": message, "error": {"code": code, "message": message}}
    if errors is not None:
        content["errors"] = errors
    return JSONResponse(status_code=code, content=content)
