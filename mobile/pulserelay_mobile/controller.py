"""
ClientSyncController: runs the sync reducer against the real world.

One instance per UI session. All messages are dispatched on the event loop
the controller was started on; network completions come back as messages
through dispatch(), so state only ever changes in one place.
"""
import asyncio
import logging
from typing import Callable, Optional, Set

from pulserelay_mobile.api import ApiError, LocationApiClient, NetworkError
from pulserelay_mobile.models import LocationMode, LocationSettings
from pulserelay_mobile.prefs import DevicePrefs
from pulserelay_mobile.sync import (
    ClientSwitchState,
    Command,
    FixedLocationInput,
    Message,
    MirrorSettings,
    PersistAutoStart,
    ReloadSettings,
    SendSettings,
    ServerSettingsLoaded,
    ShowError,
    ShowNotice,
    StartTracking,
    StopReason,
    StopTracking,
    TrackingStarted,
    TrackingStopped,
    UpdateFailed,
    UpdateSucceeded,
    UserChangedInterval,
    UserChangedMode,
    UserSetAutoStart,
    UserToggledSharing,
    UserToggledTracking,
    reduce,
)
from pulserelay_mobile.tracking import TrackingService

logger = logging.getLogger("pulserelay.controller")


class ClientSyncController:
    """Owns the client switch state for one UI session."""

    def __init__(
        self,
        api: LocationApiClient,
        prefs: DevicePrefs,
        tracking: TrackingService,
        on_error: Optional[Callable[[str], None]] = None,
        on_notice: Optional[Callable[[str], None]] = None,
        on_change: Optional[Callable[[ClientSwitchState], None]] = None,
    ):
        self.api = api
        self.prefs = prefs
        self.tracking = tracking
        self.on_error = on_error
        self.on_notice = on_notice
        self.on_change = on_change

        self._state = ClientSwitchState()
        self._tasks: Set[asyncio.Task] = set()

        tracking.on_stopped = self.notify_tracking_stopped

    @property
    def state(self) -> ClientSwitchState:
        return self._state

    # ============ Lifecycle ============

    async def start(self):
        """Load device preferences, then sync with the server."""
        auto_start = await self.prefs.auto_start()
        self._state = ClientSwitchState(
            auto_start=auto_start,
            tracking_running=self.tracking.is_running,
        )
        await self.load_settings()

    async def resume(self):
        """Screen came back: reconcile with the server again."""
        await self.load_settings()

    async def load_settings(self):
        """Fetch settings and apply them as remote state."""
        try:
            settings = await self.api.get_settings()
        except (ApiError, NetworkError) as e:
            logger.warning(f"Failed to load location settings: {e}")
            self._emit_error(f"Failed to load location settings: {e}")
            return
        self.dispatch(ServerSettingsLoaded(settings))

    async def wait_idle(self):
        """Wait until every command spawned so far (and their follow-ups) finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self):
        """Tear down with the UI: cancel in-flight work."""
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._tasks.clear()

    # ============ User intents ============

    def toggle_sharing(self, enabled: bool, fixed: Optional[FixedLocationInput] = None):
        self.dispatch(UserToggledSharing(enabled, fixed))

    def change_mode(self, mode: LocationMode, fixed: Optional[FixedLocationInput] = None):
        self.dispatch(UserChangedMode(mode, fixed))

    def change_interval(self, seconds: int):
        self.dispatch(UserChangedInterval(seconds))

    def set_tracking(self, running: bool):
        self.dispatch(UserToggledTracking(running))

    def set_auto_start(self, enabled: bool):
        self.dispatch(UserSetAutoStart(enabled))

    # ============ Service notifications ============

    def notify_tracking_stopped(self, reason: StopReason):
        self.dispatch(TrackingStopped(reason))

    # ============ Core ============

    def dispatch(self, message: Message):
        """Run one message through the reducer and execute its commands."""
        transition = reduce(self._state, message)
        changed = transition.state != self._state
        self._state = transition.state
        logger.debug(f"{type(message).__name__} -> {self._state.phase.value}, {len(transition.commands)} command(s)")

        if changed and self.on_change:
            self.on_change(self._state)

        for command in transition.commands:
            self._execute(command)

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _execute(self, command: Command):
        if isinstance(command, SendSettings):
            self._spawn(self._send_settings(command.settings))
        elif isinstance(command, ReloadSettings):
            self._spawn(self.load_settings())
        elif isinstance(command, StartTracking):
            self._spawn(self._start_tracking(command.settings))
        elif isinstance(command, StopTracking):
            self._spawn(self.tracking.stop())
        elif isinstance(command, MirrorSettings):
            self._spawn(self.prefs.save_settings(command.settings))
        elif isinstance(command, PersistAutoStart):
            self._spawn(self.prefs.set_auto_start(command.enabled))
        elif isinstance(command, ShowError):
            self._emit_error(command.message)
        elif isinstance(command, ShowNotice):
            logger.info(command.message)
            if self.on_notice:
                self.on_notice(command.message)
        else:
            raise TypeError(f"Unknown command: {command!r}")

    async def _start_tracking(self, settings: LocationSettings):
        await self.tracking.start(settings)
        if self.tracking.is_running:
            self.dispatch(TrackingStarted())

    async def _send_settings(self, settings: LocationSettings):
        try:
            echoed = await self.api.update_settings(settings)
        except ApiError as e:
            logger.warning(f"Settings update rejected: HTTP {e.status_code} {e.message}")
            self.dispatch(UpdateFailed(e.message))
            return
        except NetworkError as e:
            logger.warning(f"Settings update failed: {e}")
            self.dispatch(UpdateFailed(str(e)))
            return
        self.dispatch(UpdateSucceeded(echoed))

    def _emit_error(self, message: str):
        logger.warning(message)
        if self.on_error:
            self.on_error(message)
