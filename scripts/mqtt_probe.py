#!/usr/bin/env python3
"""Live MQTT probe for device telemetry.

Connects with the settings from ``IOTDASH_*`` environment variables (or
the flags below), prints every device update as it is applied and, every
``--report-seconds``, a summary of the dashboard views. Optionally sends
one command once the session is up.

Use this to check what field devices publish before wiring a dashboard.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
import time
from dataclasses import dataclass
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pyiotdash import (  # noqa: E402
    ConnectionState,
    DashboardClient,
    DashConfig,
    Device,
    IotDashError,
    SensorReading,
    format_last_seen,
)

_LOG = logging.getLogger("mqtt_probe")


@dataclass
class ProbeStats:
    started_at: float
    total_updates: int = 0
    readings: int = 0
    first_update_at: float | None = None
    last_update_at: float | None = None

    def on_update(self, now: float, has_reading: bool) -> float | None:
        previous = self.last_update_at
        self.total_updates += 1
        if has_reading:
            self.readings += 1
        if self.first_update_at is None:
            self.first_update_at = now
        self.last_update_at = now
        return None if previous is None else now - previous


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Live MQTT probe for device telemetry topics.",
    )
    parser.add_argument(
        "--broker",
        default=None,
        help="Broker URL, e.g. ws://localhost:8083/mqtt (default: IOTDASH_BROKER_URL).",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--report-seconds",
        type=int,
        default=30,
        help="Print a views summary each N seconds (0 = never).",
    )
    parser.add_argument(
        "--device",
        default=None,
        help="Device id to send --command to once connected.",
    )
    parser.add_argument(
        "--command",
        default=None,
        help="Command text for --device; JSON is sent as 'custom', anything else as 'message'.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Pretty-print the views summary as JSON.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    args = parser.parse_args()
    if (args.device is None) != (args.command is None):
        parser.error("--device and --command must be given together")
    return args


def _print_views(client: DashboardClient, as_json: bool) -> None:
    views = client.views()
    if as_json:
        print(views.model_dump_json(by_alias=True, indent=2))
        return
    now = views.generated_at
    print(f"[probe] Devices ({len(client.devices())})")
    for device in client.devices():
        state = "online" if device.is_online(now) else "offline"
        print(f"[probe]   {device.id:<20} {state:<8} last_seen={format_last_seen(device.last_seen, now)}")
    print(f"[probe] Series ({len(views.series_keys)})")
    for stats in views.statistics:
        print(
            f"[probe]   {stats.series_key:<28} n={stats.count} "
            f"min={stats.min:.2f} max={stats.max:.2f} avg={stats.avg:.2f}",
        )


def _print_summary(client: DashboardClient, stats: ProbeStats) -> None:
    runtime = time.time() - stats.started_at
    pipeline = client.pipeline
    print("[probe] Summary")
    print(f"[probe]   runtime_s     : {runtime:.1f}")
    print(f"[probe]   updates       : {stats.total_updates}")
    print(f"[probe]   readings      : {stats.readings}")
    print(f"[probe]   dropped       : {pipeline.dropped}")
    print(f"[probe]   ignored       : {pipeline.ignored}")
    if stats.first_update_at is not None:
        first_update = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(stats.first_update_at))
        print(f"[probe]   first_update  : {first_update}")
    if stats.last_update_at is not None:
        last_update = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(stats.last_update_at))
        print(f"[probe]   last_update   : {last_update}")


async def _run(args: argparse.Namespace) -> int:
    overrides = {"broker_url": args.broker} if args.broker else {}
    config = DashConfig.from_env(**overrides)
    stats = ProbeStats(started_at=time.time())
    stop = asyncio.Event()

    def on_device_update(device: Device, reading: SensorReading | None) -> None:
        now = time.time()
        delta = stats.on_update(now, reading is not None)
        gap_text = "first" if delta is None else f"{delta:.1f}s"
        if reading is None:
            print(f"[probe] update#{stats.total_updates} gap={gap_text} device={device.id} status={device.status}")
        else:
            print(
                f"[probe] update#{stats.total_updates} gap={gap_text} "
                f"series={reading.series_key} value={reading.value}",
            )

    def on_state_change(state: ConnectionState, reason: str) -> None:
        print(f"[probe] Connection {state}: {reason or '-'}")

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop.set)

    client = DashboardClient(config, on_device_update=on_device_update, on_state_change=on_state_change)
    print(f"[probe] Connecting to {config.broker_url} as {config.client_id}...")
    try:
        await client.connect_with_retry(max_attempts=3)
    except IotDashError as exc:  # pragma: no cover - network/system interaction
        print(f"[probe] Connect failed: {exc}", file=sys.stderr)
        return 2

    try:
        print(f"[probe] Subscribed to {', '.join(client.subscriptions)}")
        if args.device is not None:
            dispatch = await client.send_text(args.device, args.command)
            print(f"[probe] Sent {dispatch.kind} command to {args.device}: {json.loads(dispatch.message.to_payload())}")

        last_report = time.time()
        while not stop.is_set():
            now = time.time()
            if args.duration > 0 and (now - stats.started_at) >= args.duration:
                print(f"[probe] Reached --duration={args.duration}s, stopping.")
                break
            if args.report_seconds > 0 and (now - last_report) >= args.report_seconds:
                _print_views(client, args.json)
                last_report = now
            try:
                await asyncio.wait_for(stop.wait(), timeout=1.0)
            except TimeoutError:
                pass
    finally:
        await client.disconnect()

    _print_views(client, args.json)
    _print_summary(client, stats)
    return 0


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(_main())
