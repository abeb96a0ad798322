from .helpers import (
    serialize_mongo_doc,
    success_response,
    error_response,
    as_object_id,
    same_id,
    pagination_meta,
)
from .logger import Logger
from .side_effects import best_effort

__all__ = [
    "serialize_mongo_doc",
    "success_response",
    "error_response",
    "as_object_id",
    "same_id",
    "pagination_meta",
    "Logger",
    "best_effort",
]
