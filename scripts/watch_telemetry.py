#!/usr/bin/env python3
"""Print the live dashboard read model from a Realtime Database.

Reads ``FLOWMON_*`` environment variables (at least
``FLOWMON_DATABASE_URL``) and prints a one-line summary every time the
view changes.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal

from flowmon import FirebaseStreamSource, FlowmonClient, FlowmonConfig, HistoryFilter
from flowmon.state.derived import format_optional_number


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--history",
        choices=[item.value for item in HistoryFilter],
        default=None,
        help="Also subscribe to the history table with this filter",
    )
    parser.add_argument("--debug", action="store_true", help="Enable DEBUG logs")
    return parser.parse_args()


def _render(client: FlowmonClient) -> str:
    view = client.view()
    sensors = ", ".join(f"{sensor_id}={snapshot.flow}" for sensor_id, snapshot in view.sensors) or "-"
    parts = [
        view.greeting,
        f"sensors[{sensors}]",
        f"total={view.summary.total_volume_label}",
        f"updated={view.summary.latest_update_label}",
        f"r={format_optional_number(view.thresholds.r_value)}",
        f"threshold={format_optional_number(view.thresholds.threshold)}",
        view.leakage.message,
    ]
    if view.history_active:
        parts.append(f"history={len(view.history)}")
    if view.error:
        parts.append(f"error={view.error}")
    if view.thresholds.error:
        parts.append(f"system_error={view.thresholds.error}")
    return " | ".join(parts)


async def _main(args: argparse.Namespace) -> None:
    config = FlowmonConfig.from_env()
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, stop.set)

    async with FirebaseStreamSource.from_config(config) as source:
        client = FlowmonClient(config, source, on_change=lambda _name: print(_render(client), flush=True))
        async with client:
            if args.history is not None:
                client.set_history_filter(args.history)
                client.set_history_active(True)
            await stop.wait()


def main() -> None:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(_main(args))


if __name__ == "__main__":
    main()
