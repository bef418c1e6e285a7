"""Exception handling decorator for MCP tools.

Any exception escaping a tool is logged with its traceback and turned into
the same ``{"success": False, "error": ...}`` payload the tools return for
expected failures, so a single bad call never takes the server down.
"""

import functools
import logging
from typing import Any, Awaitable, Callable, Dict

logger = logging.getLogger(__name__)


def exception_handler(
    func: Callable[..., Awaitable[Dict[str, Any]]],
) -> Callable[..., Awaitable[Dict[str, Any]]]:
    @functools.wraps(func)
    async def wrapper(*args, **kwargs) -> Dict[str, Any]:
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            logger.error(f"Unhandled error in tool {func.__name__}: {e}", exc_info=True)
            return {
                "success": False,
                "error": f"{type(e).__name__}: {e}",
            }

    return wrapper
