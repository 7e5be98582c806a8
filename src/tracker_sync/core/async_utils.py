"""Async utilities for running the synchronous sync engine from asyncio code."""

import asyncio
from typing import Any, Callable, TypeVar

T = TypeVar("T")


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Queue workers use this to execute job handlers, and MCP tool handlers
    use it for store queries.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        job = await run_sync(service.get_job, job_id)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
