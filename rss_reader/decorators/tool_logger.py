"""Logging decorator for MCP tools."""

import functools
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)


def tool_logger(
    func: Callable[..., Awaitable[Dict[str, Any]]],
    config: Optional[Dict[str, Any]] = None,
) -> Callable[..., Awaitable[Dict[str, Any]]]:
    """Log entry, outcome and duration of every call to ``func``.

    Args:
        func: The tool coroutine function
        config: Server configuration as a dict; ``name`` tags the log lines
    """
    server_name = (config or {}).get("name", "rss_reader")

    @functools.wraps(func)
    async def wrapper(*args, **kwargs) -> Dict[str, Any]:
        arguments = {k: v for k, v in kwargs.items() if k != "ctx"}
        logger.info(f"[{server_name}] {func.__name__} called with {arguments}")
        start = time.perf_counter()

        try:
            result = await func(*args, **kwargs)
        except Exception:
            elapsed = (time.perf_counter() - start) * 1000
            logger.error(f"[{server_name}] {func.__name__} raised after {elapsed:.1f}ms")
            raise

        elapsed = (time.perf_counter() - start) * 1000
        success = result.get("success") if isinstance(result, dict) else None
        logger.info(f"[{server_name}] {func.__name__} finished in {elapsed:.1f}ms (success={success})")
        return result

    return wrapper
