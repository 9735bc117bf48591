from __future__ import annotations

import argparse
import random
import time

import httpx


def main() -> None:
    p = argparse.ArgumentParser(description="Simulate a bike tracker queueing position reports")
    p.add_argument("bike_id", help="Bike to move")
    p.add_argument("--api", default="http://localhost:8000", help="API base URL")
    p.add_argument("--key", default=None, help="Tracker API key (x-tracker-api-key)")
    p.add_argument("--lat", type=float, default=52.3676)
    p.add_argument("--lng", type=float, default=4.9041)
    p.add_argument("--step", type=float, default=0.001, help="Max degrees moved per report")
    p.add_argument("--interval", type=float, default=5.0, help="Seconds between reports")
    p.add_argument("--live", action="store_true", help="Apply immediately instead of queueing for the poller")
    args = p.parse_args()

    headers = {"x-tracker-api-key": args.key} if args.key else {}
    endpoint = "position" if args.live else "simulated-updates"
    url = f"{args.api}/v1/bikes/{args.bike_id}/{endpoint}"
    lat, lng = args.lat, args.lng

    with httpx.Client(timeout=10.0) as client:
        print(f"Reporting positions for bike {args.bike_id} to {url}...")
        while True:
            lat = max(-90.0, min(90.0, lat + random.uniform(-args.step, args.step)))
            lng = max(-180.0, min(180.0, lng + random.uniform(-args.step, args.step)))
            r = client.post(url, headers=headers, json={"latitude": lat, "longitude": lng})
            r.raise_for_status()
            print(f"sent: ({lat:.5f}, {lng:.5f})")
            time.sleep(args.interval)


if __name__ == "__main__":
    main()
