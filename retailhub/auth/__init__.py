from .helpers import create_access_token, decode_access_token
from .schemas import CurrentUser, get_current_user

__all__ = [
    "create_access_token",
    "decode_access_token",
    "CurrentUser",
    "get_current_user",
]
