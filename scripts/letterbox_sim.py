"""Post a simulated letterbox uplink to the ingest endpoint.

Dry-run by default: the request is printed and the counter file is left
alone unless ``-r`` is given.
"""

import argparse
import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import requests

API = os.getenv("API", "http://localhost:8000")
SENSOR_FULL = 500
SENSOR_EMPTY = 25
STATUSES = ("full", "empty", "filled", "emptied")


def sensor_for(status: str, full: int = SENSOR_FULL, empty: int = SENSOR_EMPTY) -> int:
    return full if status in ("full", "filled") else empty


def next_counter(counter_file: Path, persist: bool) -> int:
    raw = counter_file.read_text(encoding="utf-8").strip() if counter_file.exists() else ""
    counter = (int(raw) if raw else 0) + 1
    if persist:
        counter_file.write_text(str(counter), encoding="utf-8")
    return counter


def build_uplink(
    device_id: str,
    status: str,
    counter: int,
    sensor: int,
    *,
    v2: bool = False,
    threshold: int = 30,
    now: datetime | None = None,
) -> dict:
    when = (now or datetime.now(timezone.utc)).isoformat().replace("+00:00", "Z")
    fields = {"box": status, "sensor": sensor, "temp": 244, "tempC": 19, "threshold": threshold, "voltage": 3.242}
    if v2:
        return {
            "app_id": device_id,
            "dev_id": device_id,
            "hardware_serial": "0000000000000000",
            "port": 1,
            "counter": counter,
            "payload_fields": fields,
            "metadata": {"time": when, "frequency": 868.3, "modulation": "LORA"},
        }
    return {
        "end_device_ids": {
            "device_id": device_id,
            "application_ids": {"application_id": "letterbox-sensor"},
            "dev_eui": "0000000000000000",
        },
        "received_at": when,
        "uplink_message": {
            "f_port": 1,
            "f_cnt": counter,
            "decoded_payload": fields,
            "settings": {"frequency": "868300000"},
        },
    }


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("-U", "--url", default=f"{API}/ingest")
    parser.add_argument("-A", "--auth", default=os.getenv("LETTERBOX_AUTH_TOKEN", ""), help="X-TTN-AUTH secret")
    parser.add_argument("-D", "--device", required=True)
    parser.add_argument("-B", "--box", required=True, choices=STATUSES)
    parser.add_argument("-C", "--counter-file", default="./letterbox_sim.counter")
    parser.add_argument("-F", "--sensor-full", type=int, default=SENSOR_FULL)
    parser.add_argument("-E", "--sensor-empty", type=int, default=SENSOR_EMPTY)
    parser.add_argument("-r", "--real-run", action="store_true")
    parser.add_argument("-2", "--v2", action="store_true", help="legacy v2 payload")
    args = parser.parse_args(argv)

    counter_file = Path(f"{args.counter_file}.{args.device}")
    counter = next_counter(counter_file, persist=args.real_run)
    sensor = sensor_for(args.box, args.sensor_full, args.sensor_empty)
    payload = build_uplink(args.device, args.box, counter, sensor, v2=args.v2)
    print(f"box_status={args.box} sensor={sensor} counter={counter}", file=sys.stderr)

    if not args.real_run:
        print("dry-run mode active by default (missing: -r)", file=sys.stderr)
        print(json.dumps(payload, indent=2))
        return 0

    r = requests.post(
        args.url,
        json=payload,
        headers={"X-TTN-AUTH": args.auth, "User-Agent": "letterbox-sim (APIv2)" if args.v2 else "letterbox-sim (APIv3)"},
        timeout=15,
    )
    print(r.status_code, r.text)
    return 0 if r.ok else 1


if __name__ == "__main__":
    sys.exit(main())
