# desktop/heartbeat.py
from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import timedelta
from typing import Awaitable, Callable, Optional, Union

from desktop import config, errors
from desktop.license_service import LicenseService

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Union[Optional[str], Awaitable[Optional[str]]]]


class HeartbeatScheduler:
    """
    Heartbeat periodico come task asyncio posseduto dall'app:
    start() all'avvio, await stop() alla chiusura.

    - primo heartbeat dopo un breve ritardo, poi ogni `interval`
    - mai due heartbeat in parallelo (se uno è lento il successivo salta)
    - chiamata HTTP e lettura/scrittura della cache girano in un thread, il loop dell'UI non si blocca
    - un fallimento chiama on_failure(reason), non blocca l'app da solo
    """

    def __init__(
        self,
        service: LicenseService,
        token_provider: TokenProvider,
        on_failure: Callable[[str], None],
        interval: timedelta = config.HEARTBEAT_INTERVAL,
        initial_delay: float = config.HEARTBEAT_INITIAL_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.service = service
        self.token_provider = token_provider
        self.on_failure = on_failure
        self.interval_seconds = interval.total_seconds()
        self.initial_delay = initial_delay
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _token(self) -> Optional[str]:
        token = self.token_provider()
        if inspect.isawaitable(token):
            token = await token
        return token

    def _fail(self, reason: str) -> None:
        logger.warning("[heartbeat] fallito: %s", reason)
        self.on_failure(reason)

    async def run_once(self) -> bool:
        """Un singolo heartbeat. True solo se il server lo ha accettato."""
        if self._lock.locked():
            logger.debug("[heartbeat] già in corso, salto")
            return False

        async with self._lock:
            # decrypt + fsync della cache fuori dal loop, come la chiamata HTTP
            record = await asyncio.to_thread(self.service.cache.load)
            if record is None:
                logger.info("[heartbeat] nessuna licenza in cache, salto")
                return False

            token = await self._token()
            if not token:
                self._fail(errors.NO_TOKEN)
                return False

            try:
                result = await asyncio.to_thread(
                    self.service.api.heartbeat,
                    token,
                    record.device_id,
                    self.service.app_version,
                )
            except errors.TransientNetworkError:
                # tollerato finché non scade la grace offline
                self._fail(errors.NETWORK_ERROR)
                return False

            if result["ok"]:
                await asyncio.to_thread(self.service.record_heartbeat_success, result["data"])
                logger.info("[heartbeat] ok")
                return True

            await asyncio.to_thread(self.service.record_rejection, result["reason"])
            self._fail(result["reason"])
            return False

    async def run_forever(self) -> None:
        await self._sleep(self.initial_delay)
        while True:
            try:
                await self.run_once()
            except Exception as e:
                # il loop non deve morire
                logger.exception("[heartbeat] errore nel loop: %r", e)
            await self._sleep(self.interval_seconds)

    def start(self) -> None:
        # evita doppi avvii
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self.run_forever())
        logger.info("[heartbeat] scheduler avviato (interval=%ss)", int(self.interval_seconds))

    async def stop(self) -> None:
        task = self._task
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("[heartbeat] scheduler fermato")
