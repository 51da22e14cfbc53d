#!/usr/bin/env python3
"""
Sync reducer tests.

Validates:
- Server-originated messages never produce a settings write
- User toggles validate locally, send the full record, revert on failure
- Server echo (not the optimistic record) becomes the baseline
- Auto-start is gated on the user not having stopped tracking
- Server-confirmed disablement always stops tracking
"""
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from pulserelay_mobile.models import LocationMode, LocationSettings
from pulserelay_mobile.sync import (
    ClientSwitchState,
    FixedLocationInput,
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
    SyncPhase,
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

DISABLED = LocationSettings(enabled=False)
ENABLED = LocationSettings(enabled=True)


def loaded(settings=DISABLED, **state):
    return reduce(ClientSwitchState(**state), ServerSettingsLoaded(settings)).state


def kinds(transition):
    return [type(c) for c in transition.commands]


# ============ Remote sync ============

def test_initial_phase_unknown():
    assert ClientSwitchState().phase == SyncPhase.UNKNOWN


def test_load_applies_without_sending():
    t = reduce(ClientSwitchState(), ServerSettingsLoaded(ENABLED))
    assert t.state.phase == SyncPhase.ENABLED_GPS
    assert t.state.baseline == ENABLED
    assert SendSettings not in kinds(t)
    assert MirrorSettings in kinds(t)


def test_load_fixed_phase():
    fixed = LocationSettings(enabled=True, location_mode=LocationMode.FIXED, fixed_latitude=1.0, fixed_longitude=2.0)
    assert loaded(fixed).phase == SyncPhase.ENABLED_FIXED


def test_load_overwrites_never_merges():
    state = loaded(LocationSettings(enabled=True, update_interval=10, fixed_location_name="Old"))
    t = reduce(state, ServerSettingsLoaded(LocationSettings(enabled=True)))
    assert t.state.baseline.update_interval == 30
    assert t.state.baseline.fixed_location_name is None


def test_load_during_update_keeps_optimistic_display():
    state = loaded(DISABLED)
    state = reduce(state, UserToggledSharing(True)).state
    t = reduce(state, ServerSettingsLoaded(DISABLED))
    assert t.state.updating is True
    assert t.state.shown.enabled is True
    assert t.state.baseline == DISABLED


# ============ User toggle ============

def test_toggle_sends_full_record_and_marks_updating():
    state = loaded(DISABLED)
    t = reduce(state, UserToggledSharing(True))

    assert t.state.updating is True
    assert t.state.phase == SyncPhase.ENABLED_GPS
    assert t.commands == (SendSettings(DISABLED.with_changes(enabled=True), silent=False),)


def test_toggle_before_load_reloads():
    t = reduce(ClientSwitchState(), UserToggledSharing(True))
    assert kinds(t) == [ShowError, ReloadSettings]
    assert t.state.updating is False


def test_toggle_while_updating_is_dropped():
    state = reduce(loaded(DISABLED), UserToggledSharing(True)).state
    t = reduce(state, UserToggledSharing(False))
    assert t.commands == ()
    assert t.state == state


def test_success_adopts_server_echo():
    state = reduce(loaded(DISABLED), UserToggledSharing(True)).state
    echo = LocationSettings(enabled=True, update_interval=45)
    t = reduce(state, UpdateSucceeded(echo))

    assert t.state.baseline == echo
    assert t.state.shown == echo
    assert t.state.updating is False
    assert ShowNotice(message="Location sharing enabled") in t.commands
    assert MirrorSettings(echo) in t.commands


def test_failure_reverts_to_baseline():
    state = reduce(loaded(DISABLED), UserToggledSharing(True)).state
    t = reduce(state, UpdateFailed("Failed to update location settings"))

    assert t.state.phase == SyncPhase.DISABLED
    assert t.state.updating is False
    assert t.commands == (ShowError("Failed to update location settings"),)


# ============ Fixed-mode validation ============

FIXED_BASE = LocationSettings(enabled=False, location_mode=LocationMode.FIXED)


@pytest.mark.parametrize("lat,lng", [
    ("", "2.35"),
    ("91", "2.35"),
    ("48.85", "-181"),
    ("abc", "2.35"),
])
def test_invalid_fixed_input_reverts_without_network(lat, lng):
    state = loaded(FIXED_BASE)
    t = reduce(state, UserToggledSharing(True, FixedLocationInput(lat, lng)))

    assert kinds(t) == [ShowError]
    assert t.state.phase == SyncPhase.DISABLED
    assert t.state.updating is False


def test_fixed_enable_without_any_coordinates_rejected():
    t = reduce(loaded(FIXED_BASE), UserToggledSharing(True))
    assert kinds(t) == [ShowError]


def test_decimal_comma_accepted():
    t = reduce(loaded(FIXED_BASE), UserToggledSharing(True, FixedLocationInput("48,8566", " 2,3522 ", "Studio")))
    sent = t.commands[0].settings
    assert sent.fixed_latitude == pytest.approx(48.8566)
    assert sent.fixed_longitude == pytest.approx(2.3522)
    assert sent.fixed_location_name == "Studio"
    assert sent.enabled is True


def test_stored_coordinates_are_enough():
    base = FIXED_BASE.with_changes(fixed_latitude=48.0, fixed_longitude=2.0)
    t = reduce(loaded(base), UserToggledSharing(True))
    assert kinds(t) == [SendSettings]


# ============ Silent updates ============

def test_mode_change_is_silent():
    state = loaded(ENABLED)
    t = reduce(state, UserChangedMode(LocationMode.FIXED, FixedLocationInput("1.5", "2.5")))

    assert t.commands[0].silent is True
    assert t.state.suppress_server_confirmation is True

    echo = t.commands[0].settings
    done = reduce(t.state, UpdateSucceeded(echo))
    assert not any(isinstance(c, ShowNotice) for c in done.commands)
    assert done.state.suppress_server_confirmation is False


def test_mode_change_to_fixed_without_coordinates_reverts():
    t = reduce(loaded(ENABLED), UserChangedMode(LocationMode.FIXED))
    assert kinds(t) == [ShowError]
    assert t.state.phase == SyncPhase.ENABLED_GPS


def test_same_mode_is_noop():
    t = reduce(loaded(ENABLED), UserChangedMode(LocationMode.GPS))
    assert t.commands == ()


def test_interval_clamped():
    t = reduce(loaded(ENABLED), UserChangedInterval(1))
    assert t.commands[0].settings.update_interval == 5

    t = reduce(loaded(ENABLED), UserChangedInterval(10_000))
    assert t.commands[0].settings.update_interval == 300


# ============ Tracking ============

def test_auto_start_on_server_enabled():
    t = reduce(ClientSwitchState(auto_start=True), ServerSettingsLoaded(ENABLED))
    assert StartTracking(ENABLED) in t.commands
    assert t.state.tracking_running is True


def test_no_auto_start_without_pref():
    t = reduce(ClientSwitchState(auto_start=False), ServerSettingsLoaded(ENABLED))
    assert StartTracking not in kinds(t)


def test_no_auto_start_after_user_stopped():
    t = reduce(ClientSwitchState(auto_start=True, user_manually_stopped=True), ServerSettingsLoaded(ENABLED))
    assert StartTracking not in kinds(t)


def test_no_second_start_when_running():
    t = reduce(ClientSwitchState(auto_start=True, tracking_running=True), ServerSettingsLoaded(ENABLED))
    assert StartTracking not in kinds(t)


def test_server_disable_always_stops_tracking():
    state = ClientSwitchState(tracking_running=True, user_manually_stopped=True)
    t = reduce(state, ServerSettingsLoaded(DISABLED))
    assert StopTracking in kinds(t)
    assert t.state.tracking_running is False


def test_running_tracking_reconfigured_on_interval_change():
    state = loaded(ENABLED, auto_start=True)
    state = reduce(state, UserChangedInterval(60)).state
    t = reduce(state, UpdateSucceeded(ENABLED.with_changes(update_interval=60)))
    assert StartTracking(ENABLED.with_changes(update_interval=60)) in t.commands


def test_user_stop_from_notification_blocks_auto_start():
    state = loaded(ENABLED, auto_start=True)
    assert state.tracking_running is True

    t = reduce(state, TrackingStopped(StopReason.USER))
    assert t.state.user_manually_stopped is True
    assert kinds(t) == [ReloadSettings]

    again = reduce(t.state, ServerSettingsLoaded(ENABLED))
    assert StartTracking not in kinds(again)


def test_server_rejection_does_not_mark_user_stop():
    state = loaded(ENABLED, auto_start=True)
    t = reduce(state, TrackingStopped(StopReason.SERVER_REJECTED))

    assert t.state.tracking_running is False
    assert t.state.user_manually_stopped is False
    assert ReloadSettings in kinds(t)


def test_user_start_clears_manual_stop():
    state = loaded(ENABLED, user_manually_stopped=True)
    t = reduce(state, UserToggledTracking(True))
    assert t.state.user_manually_stopped is False
    assert t.commands == (StartTracking(ENABLED),)


def test_user_start_requires_sharing():
    t = reduce(loaded(DISABLED), UserToggledTracking(True))
    assert kinds(t) == [ShowError]
    assert t.state.tracking_running is False


def test_user_stop():
    state = loaded(ENABLED, auto_start=True)
    t = reduce(state, UserToggledTracking(False))
    assert t.commands == (StopTracking(),)
    assert t.state.user_manually_stopped is True


def test_tracking_started_by_service_is_recorded():
    t = reduce(loaded(ENABLED), TrackingStarted())
    assert t.state.tracking_running is True
    assert t.commands == ()


def test_auto_start_pref_persisted():
    t = reduce(loaded(DISABLED), UserSetAutoStart(True))
    assert t.state.auto_start is True
    assert t.commands == (PersistAutoStart(True),)


def test_unknown_message_rejected():
    with pytest.raises(TypeError):
        reduce(ClientSwitchState(), object())
