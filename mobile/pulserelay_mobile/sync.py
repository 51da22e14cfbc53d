"""
Client sync state machine.

reduce(state, message) -> Transition(state, commands)

Messages say where a change came from: the server (ServerSettingsLoaded,
UpdateSucceeded, UpdateFailed), the user (UserToggledSharing,
UserChangedMode, ...) or the tracking service (TrackingStarted,
TrackingStopped). Only user messages ever produce SendSettings, so applying
server state can never echo back to the server.

The reducer is pure. Commands are executed by ClientSyncController.

Phases:
    UNKNOWN        settings not loaded yet
    DISABLED       sharing off
    ENABLED_GPS    sharing live device fixes
    ENABLED_FIXED  sharing a configured coordinate
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple, Union

from pulserelay_mobile.coordinates import CoordinateError, check_fixed_location, parse_fixed_location
from pulserelay_mobile.models import LocationMode, LocationSettings, clamp_interval


class SyncPhase(str, Enum):
    UNKNOWN = "unknown"
    DISABLED = "disabled"
    ENABLED_GPS = "enabled_gps"
    ENABLED_FIXED = "enabled_fixed"


class StopReason(str, Enum):
    USER = "user"                         # stopped from the notification / UI
    SERVER_REJECTED = "server_rejected"   # 403: sharing disabled server-side


def phase_for(settings: Optional[LocationSettings]) -> SyncPhase:
    if settings is None:
        return SyncPhase.UNKNOWN
    if not settings.enabled:
        return SyncPhase.DISABLED
    if settings.is_fixed:
        return SyncPhase.ENABLED_FIXED
    return SyncPhase.ENABLED_GPS


@dataclass(frozen=True)
class ClientSwitchState:
    """
    Everything the UI renders from.

    baseline is the last server-confirmed record; shown is what the switches
    display (baseline, or the optimistic record while updating).
    """
    baseline: Optional[LocationSettings] = None
    shown: Optional[LocationSettings] = None
    updating: bool = False
    suppress_server_confirmation: bool = False
    user_manually_stopped: bool = False
    tracking_running: bool = False
    auto_start: bool = False

    @property
    def phase(self) -> SyncPhase:
        return phase_for(self.shown)


# ============ Messages ============

@dataclass(frozen=True)
class FixedLocationInput:
    """Coordinates as typed by the user."""
    latitude: str
    longitude: str
    name: Optional[str] = None


@dataclass(frozen=True)
class ServerSettingsLoaded:
    settings: LocationSettings


@dataclass(frozen=True)
class UserToggledSharing:
    enabled: bool
    fixed: Optional[FixedLocationInput] = None


@dataclass(frozen=True)
class UserChangedMode:
    mode: LocationMode
    fixed: Optional[FixedLocationInput] = None


@dataclass(frozen=True)
class UserChangedInterval:
    seconds: int


@dataclass(frozen=True)
class UserToggledTracking:
    running: bool


@dataclass(frozen=True)
class UserSetAutoStart:
    enabled: bool


@dataclass(frozen=True)
class TrackingStarted:
    pass


@dataclass(frozen=True)
class TrackingStopped:
    reason: StopReason


@dataclass(frozen=True)
class UpdateSucceeded:
    settings: LocationSettings


@dataclass(frozen=True)
class UpdateFailed:
    error: str


Message = Union[
    ServerSettingsLoaded,
    UserToggledSharing,
    UserChangedMode,
    UserChangedInterval,
    UserToggledTracking,
    UserSetAutoStart,
    TrackingStarted,
    TrackingStopped,
    UpdateSucceeded,
    UpdateFailed,
]


# ============ Commands ============

@dataclass(frozen=True)
class SendSettings:
    settings: LocationSettings
    silent: bool = False


@dataclass(frozen=True)
class ReloadSettings:
    pass


@dataclass(frozen=True)
class StartTracking:
    """Start tracking, or reconfigure it if already running."""
    settings: LocationSettings


@dataclass(frozen=True)
class StopTracking:
    pass


@dataclass(frozen=True)
class MirrorSettings:
    """Write server-confirmed settings to the device preference store."""
    settings: LocationSettings


@dataclass(frozen=True)
class PersistAutoStart:
    enabled: bool


@dataclass(frozen=True)
class ShowError:
    message: str


@dataclass(frozen=True)
class ShowNotice:
    message: str


Command = Union[
    SendSettings,
    ReloadSettings,
    StartTracking,
    StopTracking,
    MirrorSettings,
    PersistAutoStart,
    ShowError,
    ShowNotice,
]


@dataclass(frozen=True)
class Transition:
    state: ClientSwitchState
    commands: Tuple[Command, ...] = field(default_factory=tuple)


NOT_LOADED = "Location settings are not loaded yet"
SHARING_REQUIRED = "Enable location sharing first"
SHARING_REJECTED = "Location sharing is not enabled"


# ============ Helpers ============

def _apply_fixed_input(settings: LocationSettings, fixed: Optional[FixedLocationInput]) -> LocationSettings:
    """Merge typed coordinates into a desired record. Raises CoordinateError."""
    if fixed is None:
        return settings
    latitude, longitude = parse_fixed_location(fixed.latitude, fixed.longitude)
    name = fixed.name.strip() if fixed.name else None
    return settings.with_changes(
        fixed_latitude=latitude,
        fixed_longitude=longitude,
        fixed_location_name=name or settings.fixed_location_name,
    )


def _validate(desired: LocationSettings) -> None:
    """An enabled fixed share needs a usable coordinate. Raises CoordinateError."""
    if desired.enabled and desired.is_fixed:
        check_fixed_location(desired.fixed_latitude, desired.fixed_longitude)


def _tracking_affecting(settings: LocationSettings) -> tuple:
    return (
        settings.location_mode,
        settings.update_interval,
        settings.fixed_latitude,
        settings.fixed_longitude,
    )


def _reconcile_tracking(
    state: ClientSwitchState,
    previous: Optional[LocationSettings],
) -> Tuple[ClientSwitchState, Tuple[Command, ...]]:
    """
    Tracking follows server-confirmed settings.

    Disablement always stops it. Enablement only starts it when auto_start
    is on and the user has not stopped it themselves this session.
    """
    confirmed = state.baseline
    if confirmed is None:
        return state, ()

    if not confirmed.enabled:
        if state.tracking_running:
            return replace(state, tracking_running=False), (StopTracking(),)
        return state, ()

    if state.tracking_running:
        if previous is not None and _tracking_affecting(previous) != _tracking_affecting(confirmed):
            return state, (StartTracking(confirmed),)
        return state, ()

    if state.auto_start and not state.user_manually_stopped:
        return replace(state, tracking_running=True), (StartTracking(confirmed),)
    return state, ()


def _begin_update(
    state: ClientSwitchState,
    desired: LocationSettings,
    silent: bool,
) -> Transition:
    try:
        _validate(desired)
    except CoordinateError as e:
        # Switches fall back to the confirmed state; nothing is sent
        return Transition(replace(state, shown=state.baseline), (ShowError(e.message),))

    new_state = replace(
        state,
        shown=desired,
        updating=True,
        suppress_server_confirmation=silent,
    )
    return Transition(new_state, (SendSettings(desired, silent=silent),))


def _guard_user_change(state: ClientSwitchState) -> Optional[Transition]:
    """Reject user edits before load and while a write is in flight."""
    if state.baseline is None:
        return Transition(state, (ShowError(NOT_LOADED), ReloadSettings()))
    if state.updating:
        return Transition(state)
    return None


# ============ Reducer ============

def reduce(state: ClientSwitchState, message: Message) -> Transition:
    """Compute the next state and the side effects to run."""

    if isinstance(message, ServerSettingsLoaded):
        previous = state.baseline
        new_state = replace(state, baseline=message.settings)
        if not state.updating:
            new_state = replace(new_state, shown=message.settings)
        new_state, tracking = _reconcile_tracking(new_state, previous)
        return Transition(new_state, (MirrorSettings(message.settings),) + tracking)

    if isinstance(message, UpdateSucceeded):
        previous = state.baseline
        silent = state.suppress_server_confirmation
        new_state = replace(
            state,
            baseline=message.settings,
            shown=message.settings,
            updating=False,
            suppress_server_confirmation=False,
        )
        commands: Tuple[Command, ...] = (MirrorSettings(message.settings),)
        if not silent:
            word = "enabled" if message.settings.enabled else "disabled"
            commands += (ShowNotice(f"Location sharing {word}"),)
        new_state, tracking = _reconcile_tracking(new_state, previous)
        return Transition(new_state, commands + tracking)

    if isinstance(message, UpdateFailed):
        new_state = replace(
            state,
            shown=state.baseline,
            updating=False,
            suppress_server_confirmation=False,
        )
        return Transition(new_state, (ShowError(message.error),))

    if isinstance(message, UserToggledSharing):
        blocked = _guard_user_change(state)
        if blocked:
            return blocked
        try:
            desired = _apply_fixed_input(
                state.baseline.with_changes(enabled=message.enabled),
                message.fixed,
            )
        except CoordinateError as e:
            return Transition(replace(state, shown=state.baseline), (ShowError(e.message),))
        return _begin_update(state, desired, silent=False)

    if isinstance(message, UserChangedMode):
        blocked = _guard_user_change(state)
        if blocked:
            return blocked
        try:
            desired = _apply_fixed_input(
                state.baseline.with_changes(location_mode=message.mode),
                message.fixed,
            )
        except CoordinateError as e:
            return Transition(replace(state, shown=state.baseline), (ShowError(e.message),))
        if desired == state.baseline:
            return Transition(state)
        return _begin_update(state, desired, silent=True)

    if isinstance(message, UserChangedInterval):
        blocked = _guard_user_change(state)
        if blocked:
            return blocked
        desired = state.baseline.with_changes(update_interval=clamp_interval(message.seconds))
        if desired == state.baseline:
            return Transition(state)
        return _begin_update(state, desired, silent=True)

    if isinstance(message, UserToggledTracking):
        if message.running:
            if state.baseline is None or not state.baseline.enabled:
                return Transition(state, (ShowError(SHARING_REQUIRED),))
            new_state = replace(state, tracking_running=True, user_manually_stopped=False)
            return Transition(new_state, (StartTracking(state.baseline),))
        new_state = replace(state, tracking_running=False, user_manually_stopped=True)
        return Transition(new_state, (StopTracking(),))

    if isinstance(message, UserSetAutoStart):
        return Transition(replace(state, auto_start=message.enabled), (PersistAutoStart(message.enabled),))

    if isinstance(message, TrackingStarted):
        return Transition(replace(state, tracking_running=True))

    if isinstance(message, TrackingStopped):
        if message.reason == StopReason.USER:
            new_state = replace(state, tracking_running=False, user_manually_stopped=True)
            return Transition(new_state, (ReloadSettings(),))
        new_state = replace(state, tracking_running=False)
        return Transition(new_state, (ShowNotice(SHARING_REJECTED), ReloadSettings()))

    raise TypeError(f"Unknown message: {message!r}")
