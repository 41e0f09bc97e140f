"""
Exponential backoff shared by sources and sinks.

Doubles the delay on every failure and halves it on every success, so a
component settles near the throttling rate of the service it calls.
"""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, Optional, TypeVar

from loguru import logger

from copy_client.errors import ConfigurationError

T = TypeVar("T")
Action = Callable[[], Awaitable[T]]


class BackoffPolicy:
    """Stateful retry-delay calculator.

    Invariant: base_delay_ms <= current_delay_ms <= max_delay_ms.

    The policy holds no queue: concurrent callers sharing one instance share
    the backoff magnitude but wait independently.
    """

    def __init__(
        self,
        base_delay_ms: float,
        max_delay_ms: float,
        *,
        rng: Optional[random.Random] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        if base_delay_ms <= 0:
            raise ConfigurationError("base_delay_ms must be > 0")
        if max_delay_ms < base_delay_ms:
            raise ConfigurationError("max_delay_ms must be >= base_delay_ms")
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self._current = base_delay_ms
        self._rng = rng or random.Random()
        self._sleep = sleep or asyncio.sleep

    @classmethod
    def for_table_scan(cls, **kwargs) -> "BackoffPolicy":
        return cls(64, 4096, **kwargs)

    @classmethod
    def for_table_write(cls, **kwargs) -> "BackoffPolicy":
        return cls(16, 1024, **kwargs)

    @classmethod
    def for_object_transfer(cls, **kwargs) -> "BackoffPolicy":
        return cls(64, 4096, **kwargs)

    @property
    def current_delay_ms(self) -> float:
        return self._current

    def reset(self) -> None:
        self._current = self.base_delay_ms

    async def execute(self, action: Optional[Action[T]] = None) -> Optional[T]:
        """Double the delay, wait a random time below it, then run action."""
        self._current = min(self._current * 2, self.max_delay_ms)
        logger.debug(f"Backoff for {self._current} ms")
        await self._sleep(self._current * self._rng.random() / 1000.0)
        if action is not None:
            return await action()
        return None

    async def skip(self, action: Optional[Action[T]] = None) -> Optional[T]:
        """Halve the delay without waiting, then run action."""
        if self._current > self.base_delay_ms:
            self._current = max(self._current / 2, self.base_delay_ms)
            logger.debug(f"Reducing backoff time to {self._current} ms")
        if action is not None:
            return await action()
        return None
