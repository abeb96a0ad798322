"""
Best-effort side effects (audit entries, notifications).

The primary write is authoritative: a side effect runs after it, and any
failure is logged and dropped, never raised to the caller.
"""

from typing import Any, Awaitable, Optional

from .logger import Logger

logger = Logger("side_effects")


async def best_effort(effect: Awaitable[Any], label: str) -> Optional[Any]:
    """Await `effect`; on failure log it under `label` and return None."""
    try:
        return await effect
    except Exception as exc:
        logger.error(f"Side effect '{label}' failed: {exc}")
        return None
