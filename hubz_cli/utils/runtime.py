"""Run async work against a background runtime from synchronous CLI commands"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from hubz.config.settings import get_settings
from hubz.v1.runtime import BackgroundRuntime, background_runtime

T = TypeVar("T")


def run_with_runtime(
    work: Callable[[BackgroundRuntime], Awaitable[T]], *, start_scheduler: bool = False
) -> T:
    """Open a runtime for the duration of ``work`` and return its result"""

    async def _main() -> T:
        async with background_runtime(
            get_settings(), start_scheduler=start_scheduler
        ) as runtime:
            return await work(runtime)

    return asyncio.run(_main())
