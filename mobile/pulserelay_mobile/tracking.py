"""
Location tracking loop.

Posts a fix every update_interval seconds while running. In GPS mode the
fix comes from the device's LocationProvider; in fixed mode the
server-confirmed coordinate is sent, falling back to the preference store
when the settings carry none. Provider failures are logged and the loop
carries on. A 403 from the server means sharing was turned off elsewhere:
the loop stops itself and reports it.
"""
import asyncio
import logging
from typing import Callable, Optional, Protocol

from pulserelay_mobile.api import ApiError, LocationApiClient, NetworkError
from pulserelay_mobile.models import LocationFix, LocationSettings, clamp_interval
from pulserelay_mobile.prefs import DevicePrefs
from pulserelay_mobile.signal_quality import gps_quality
from pulserelay_mobile.sync import StopReason

logger = logging.getLogger("pulserelay.tracking")


class LocationProvider(Protocol):
    """Device positioning, supplied by the platform layer."""

    async def last_known(self) -> Optional[LocationFix]:
        """Most recent cached fix, if any (returns immediately)."""
        ...

    async def request_fix(self) -> LocationFix:
        """Wait for a fresh fix."""
        ...

    def gsm_signal(self) -> Optional[int]:
        """Current cellular signal 0-100, if known."""
        ...


class LocationUnavailableError(Exception):
    """The provider produced no fix."""


class TrackingService:
    """Background sender of location fixes."""

    def __init__(
        self,
        api: LocationApiClient,
        prefs: DevicePrefs,
        provider: LocationProvider,
        on_stopped: Optional[Callable[[StopReason], None]] = None,
    ):
        self.api = api
        self.prefs = prefs
        self.provider = provider
        self.on_stopped = on_stopped

        self._settings: Optional[LocationSettings] = None
        self._task: Optional[asyncio.Task] = None
        self._wakeup = asyncio.Event()
        self._sent_count = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def sent_count(self) -> int:
        return self._sent_count

    async def start(self, settings: LocationSettings):
        """Start the loop, or apply new settings to the running loop."""
        self._settings = settings
        if self.is_running:
            logger.info(
                f"Tracking reconfigured: mode={settings.location_mode.value} "
                f"interval={clamp_interval(settings.update_interval)}s"
            )
            self._wakeup.set()
            return

        logger.info(f"Tracking started: mode={settings.location_mode.value}")
        self._task = asyncio.create_task(self._run())

    async def stop(self):
        """Stop without notifying (the caller already knows)."""
        task = self._task
        self._task = None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info("Tracking stopped")

    async def stop_from_notification(self):
        """The user pressed stop outside the app UI."""
        await self.stop()
        self._notify(StopReason.USER)

    def _notify(self, reason: StopReason):
        if self.on_stopped:
            self.on_stopped(reason)

    async def _run(self):
        while True:
            self._wakeup.clear()
            settings = self._settings
            try:
                fix = await self._next_fix(settings)
            except Exception as e:
                logger.warning(f"Location fix failed: {e}")
                fix = None

            try:
                if fix is not None:
                    await self._send(fix)
            except ApiError as e:
                if e.sharing_disabled:
                    logger.warning("Server rejected location update: sharing disabled")
                    self._task = None
                    self._notify(StopReason.SERVER_REJECTED)
                    return
                logger.warning(f"Location update failed: HTTP {e.status_code} {e.message}")
            except NetworkError as e:
                logger.warning(f"Location update not sent: {e}")

            try:
                await asyncio.wait_for(
                    self._wakeup.wait(),
                    timeout=clamp_interval(self._settings.update_interval),
                )
            except asyncio.TimeoutError:
                pass

    async def _next_fix(self, settings: LocationSettings) -> Optional[LocationFix]:
        if settings.is_fixed:
            return await self._fixed_fix(settings)
        fix = await self.provider.last_known()
        if fix is None:
            fix = await self.provider.request_fix()
        return fix

    async def _fixed_fix(self, settings: LocationSettings) -> Optional[LocationFix]:
        # Server-confirmed coordinate first; the prefs mirror may still be in flight.
        if settings.fixed_latitude is not None and settings.fixed_longitude is not None:
            latitude, longitude = settings.fixed_latitude, settings.fixed_longitude
        else:
            stored = await self.prefs.fixed_location()
            if stored is None:
                logger.warning("Fixed mode without a configured location, nothing sent")
                return None
            latitude, longitude = stored[0], stored[1]
        return LocationFix(latitude=latitude, longitude=longitude, accuracy=0.0, gps_quality=100)

    async def _send(self, fix: LocationFix):
        if fix.gps_quality is None:
            fix.gps_quality = gps_quality(fix.accuracy, fix.age_s)
        if fix.gsm_signal is None:
            fix.gsm_signal = self.provider.gsm_signal()
        await self.api.send_location(fix)
        self._sent_count += 1
        logger.debug(f"Location sent: {fix.latitude:.5f},{fix.longitude:.5f} q={fix.gps_quality}")

    async def send_current_location(self) -> LocationFix:
        """
        One-shot send for a "share now" action.

        A fresh fix is requested at the same time as the cached one is read;
        whichever arrives first is sent and the other request is cancelled,
        so one action never produces two sends.
        """
        cached_task = asyncio.create_task(self.provider.last_known())
        fresh_task = asyncio.create_task(self.provider.request_fix())

        fix: Optional[LocationFix] = None
        pending = {cached_task, fresh_task}
        try:
            while fix is None and pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    result = task.result()
                    if result is not None and fix is None:
                        fix = result
        finally:
            for task in pending:
                task.cancel()

        if fix is None:
            raise LocationUnavailableError("No location fix available")

        await self._send(fix)
        return fix
