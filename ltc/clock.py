"""Wall clock abstraction so polling and refresh loops can be driven by tests."""

import asyncio
from datetime import UTC, datetime


class Clock:
    """Real clock backed by :mod:`datetime` and :func:`asyncio.sleep`."""

    def now(self) -> datetime:
        """Current UTC time."""
        return datetime.now(UTC)

    async def sleep(self, seconds: float) -> None:
        """Suspend the calling task for ``seconds``."""
        await asyncio.sleep(seconds)
