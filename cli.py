from __future__ import annotations

import argparse
import json
import sys

import requests


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Declarative Container Manager CLI")
    p.add_argument("--api", default="http://localhost:8082", help="API base URL")
    p.add_argument("--timeout", type=float, default=600, help="Seconds to wait; a pass may pull images")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("update", help="Run one reconciliation pass")
    sub.add_parser("reload", help="Re-read the configuration file")
    sub.add_parser("metrics", help="Collect and print container metrics")

    s_ev = sub.add_parser("events", help="Show events")
    s_ev.add_argument("--limit", type=int, default=20)

    args = p.parse_args(argv)

    base = args.api.rstrip("/")

    try:
        if args.cmd in {"update", "reload"}:
            r = requests.post(f"{base}/{args.cmd}", timeout=args.timeout)
            sys.stdout.write(r.text)
            return 0 if r.ok else 1

        if args.cmd == "metrics":
            r = requests.get(f"{base}/metrics", timeout=args.timeout)
            sys.stdout.write(r.text)
            return 0 if r.ok else 1

        if args.cmd == "events":
            r = requests.get(f"{base}/events", params={"limit": args.limit}, timeout=10)
            if not r.ok:
                sys.stderr.write(r.text)
                return 1
            _print(r.json())
            return 0
    except requests.exceptions.RequestException as e:
        print(f"cannot reach {base}: {e}", file=sys.stderr)
        return 1

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
