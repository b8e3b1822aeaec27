# tracesdk/session/cache.py
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

from tracesdk.session.config import SdkConfig

logger = logging.getLogger(__name__)


class CacheState(str, Enum):
    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    FAILED = "failed"


class ConfigCache:
    """
    Lazily resolved, process-wide session config with single-flight
    resolution.

    At most one resolution runs at a time. Callers arriving while it is in
    flight (including forced refreshes) await the same task and observe
    the same config or the same exception. A failed resolution stores
    nothing; the next call starts a new one.
    """

    def __init__(self, resolver: Callable[[], Awaitable[SdkConfig]]):
        self._resolver = resolver
        self._lock = asyncio.Lock()
        self._config: Optional[SdkConfig] = None
        self._inflight: Optional[asyncio.Task] = None
        self.state = CacheState.UNRESOLVED

    @property
    def config(self) -> Optional[SdkConfig]:
        return self._config

    async def _resolve(self) -> SdkConfig:
        try:
            config = await self._resolver()
        except BaseException:
            self._config = None
            self.state = CacheState.FAILED
            raise
        else:
            self._config = config
            self.state = CacheState.RESOLVED
            return config
        finally:
            self._inflight = None

    async def get(self, force_update: bool = False) -> SdkConfig:
        async with self._lock:
            if self._inflight is None:
                if self._config is not None and not force_update:
                    return self._config
                logger.info("[tracesdk] %s session config", "Refreshing" if force_update else "Resolving")
                self.state = CacheState.RESOLVING
                self._inflight = asyncio.get_running_loop().create_task(self._resolve())
            inflight = self._inflight
        # cancelling one waiter leaves the shared resolution running
        return await asyncio.shield(inflight)

    def set_group_label(self, group_label: Optional[str]) -> None:
        if self._config is not None:
            self._config.group_label = group_label
