#!/usr/bin/env python3
"""
PulseRelay mobile client - command line

Drives the same sync controller the app uses, for scripting and testing
against a live backend.

Usage:
    python -m pulserelay_mobile status
    python -m pulserelay_mobile enable
    python -m pulserelay_mobile enable --fixed "48,8566" "2,3522" --name "Studio"
    python -m pulserelay_mobile disable
    python -m pulserelay_mobile send 48.8566 2.3522 --accuracy 12

Environment Variables:
    see pulserelay_mobile.config
"""
import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from pulserelay_mobile.api import ApiError, LocationApiClient, NetworkError
from pulserelay_mobile.config import MobileConfig, setup_logging
from pulserelay_mobile.controller import ClientSyncController
from pulserelay_mobile.models import LocationFix, LocationMode
from pulserelay_mobile.prefs import DevicePrefs
from pulserelay_mobile.sync import FixedLocationInput
from pulserelay_mobile.tracking import TrackingService

logger = logging.getLogger("pulserelay.cli")


class ManualLocationProvider:
    """Provider fed from the command line."""

    def __init__(self, fix: Optional[LocationFix] = None):
        self._fix = fix

    async def last_known(self) -> Optional[LocationFix]:
        return self._fix

    async def request_fix(self) -> LocationFix:
        if self._fix is None:
            raise RuntimeError("No position given on the command line")
        return self._fix

    def gsm_signal(self) -> Optional[int]:
        return None


async def _run(args, config: MobileConfig) -> int:
    prefs = DevicePrefs(config.prefs_path)
    await prefs.initialize()
    await prefs.migrate_legacy_coordinates()

    errors = []
    async with LocationApiClient(config) as api:
        fix = None
        if args.command == "send":
            fix = LocationFix(latitude=args.latitude, longitude=args.longitude, accuracy=args.accuracy)
        tracking = TrackingService(api, prefs, ManualLocationProvider(fix))
        controller = ClientSyncController(api, prefs, tracking, on_error=errors.append, on_notice=print)

        try:
            if args.command == "status":
                print(json.dumps(await api.get_current(), indent=2, default=str))
                return 0

            if args.command == "send":
                await tracking.send_current_location()
                print("Location sent")
                return 0

            await controller.start()
            if controller.state.baseline is None:
                return 1

            if args.command == "enable":
                fixed = None
                if args.fixed:
                    fixed = FixedLocationInput(args.fixed[0], args.fixed[1], args.name)
                    controller.change_mode(LocationMode.FIXED, fixed)
                    await controller.wait_idle()
                controller.toggle_sharing(True, fixed)
            else:
                controller.toggle_sharing(False)

            await controller.wait_idle()
            await tracking.stop()
            print(json.dumps(controller.state.baseline.to_json(), indent=2))
            return 1 if errors else 0

        except (ApiError, NetworkError) as e:
            logger.error(f"Request failed: {e}")
            return 1
        finally:
            await controller.close()
            await prefs.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="PulseRelay location sharing client")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Show what the dashboard currently shows")

    enable = sub.add_parser("enable", help="Enable location sharing")
    enable.add_argument("--fixed", nargs=2, metavar=("LAT", "LNG"), help="Share a fixed location")
    enable.add_argument("--name", help="Fixed location name")

    sub.add_parser("disable", help="Disable location sharing (clears stored samples)")

    send = sub.add_parser("send", help="Send one location fix")
    send.add_argument("latitude", type=float)
    send.add_argument("longitude", type=float)
    send.add_argument("--accuracy", type=float)

    args = parser.parse_args()
    config = MobileConfig.from_env()
    setup_logging(config)

    if not config.token:
        logger.error("PULSERELAY_TOKEN is not set")
        return 2

    return asyncio.run(_run(args, config))


if __name__ == "__main__":
    sys.exit(main())
