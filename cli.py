from __future__ import annotations

import argparse
import json
import logging
import sys

import requests

from wlh.configmaps import delete_configmap, ensure_configmap
from wlh.errors import WLHError
from wlh.healthz import TerminationReason, start_health_server
from wlh.objects import Job, ObjectMeta
from wlh.settings import settings
from wlh.store import HttpResourceStore, ResourceStore, SqliteResourceStore


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _parse_data(pairs: list[str]) -> dict[str, str]:
    data: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid --data entry {pair!r}; expected key=value.")
        data[key] = value
    return data


def _store(args) -> ResourceStore:
    if args.api:
        return HttpResourceStore(args.api, token=settings.api_token, timeout_s=settings.api_timeout_s)
    return SqliteResourceStore(args.db)


def _cmd_healthz(args) -> int:
    try:
        srv = start_health_server(args.bind, args.name, grace_period_s=args.grace)
    except WLHError as e:
        logging.getLogger("wlh").error("%s", e)
        return 1
    term = srv.wait()
    return 0 if term is not None and term.reason is TerminationReason.SHUTDOWN else 1


def _cmd_probe(args) -> int:
    try:
        r = requests.get(args.url, timeout=args.timeout)
    except requests.exceptions.RequestException as e:
        _print({"healthy": False, "detail": f"{type(e).__name__}: {e}"})
        return 1
    _print({"healthy": r.status_code == 200, "status": r.status_code, "body": r.text})
    return 0 if r.status_code == 200 else 1


def _cmd_configmap(args) -> int:
    job = Job(metadata=ObjectMeta(namespace=args.namespace, name=args.job, uid=args.job_uid))
    store = _store(args)
    try:
        if args.action == "apply":
            ensure_configmap(job, store, _parse_data(args.data), args.name)
            _print({"applied": f"{args.namespace}/{args.name}"})
        else:
            delete_configmap(job, store, args.name)
            _print({"deleted": f"{args.namespace}/{args.name}"})
    except (WLHError, ValueError) as e:
        _print({"error": str(e)})
        return 1
    finally:
        if isinstance(store, HttpResourceStore):
            store.close()
    return 0


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Workload helpers CLI")
    p.add_argument("--log-level", default="INFO")
    sub = p.add_subparsers(dest="cmd", required=True)

    s_hz = sub.add_parser("healthz", help="Serve healthz until SIGINT/SIGTERM")
    s_hz.add_argument("--bind", default=settings.healthz_bind_address)
    s_hz.add_argument("--name", default=settings.healthz_name)
    s_hz.add_argument("--grace", type=float, default=settings.shutdown_grace_s, help="Shutdown grace period (s)")

    s_probe = sub.add_parser("probe", help="Query a healthz endpoint")
    s_probe.add_argument("--url", default="http://localhost:11251/healthz")
    s_probe.add_argument("--timeout", type=float, default=2.0)

    s_cm = sub.add_parser("configmap", help="Apply or delete a job's ConfigMap")
    s_cm.add_argument("action", choices=["apply", "delete"])
    s_cm.add_argument("--namespace", required=True)
    s_cm.add_argument("--job", required=True, help="Owning job name")
    s_cm.add_argument("--job-uid", required=True)
    s_cm.add_argument("--name", required=True, help="ConfigMap name")
    s_cm.add_argument("--data", action="append", default=[], help="key=value, repeatable")
    target = s_cm.add_mutually_exclusive_group()
    target.add_argument("--db", default=settings.store_db_path, help="SQLite store path")
    target.add_argument("--api", default=settings.api_url, help="API server base URL")

    args = p.parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    if args.cmd == "healthz":
        return _cmd_healthz(args)
    if args.cmd == "probe":
        return _cmd_probe(args)
    if args.cmd == "configmap":
        return _cmd_configmap(args)
    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
