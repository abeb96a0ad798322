from .resolver import COLLECTIONS, get_collection, resolve_submission_scope

__all__ = ["COLLECTIONS", "get_collection", "resolve_submission_scope"]
