"""CLI entrypoint."""
from __future__ import annotations

import argparse
import logging
import os
import sys
import threading
from dataclasses import replace
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from geogrid import config
from geogrid.cache import ResultCache
from geogrid.engine import run_geo_grid_check
from geogrid.geo import SHAPES, generate_grid
from geogrid.http import RequestMetrics
from geogrid.models import GeoGridReport, GridConfigError, GridResult
from geogrid.provider import DataForSeoProvider
from geogrid.rank_client import PollPolicy
from geogrid.reporting import format_summary, write_report
from geogrid.synthetic import SyntheticProvider

logger = logging.getLogger("run")


def _repo_root() -> Path:
    return Path(__file__).resolve().parent


def load_env(path: str = ".env", root_dir: Optional[Path] = None) -> None:
    """Optionally load a repo-root .env file without overriding real env vars."""
    root = Path(root_dir) if root_dir else _repo_root()
    env_path = (root / path).resolve()
    if not env_path.exists():
        return
    load_dotenv(dotenv_path=env_path, override=False)


def _env_len(name: str) -> int:
    return len((os.environ.get(name) or "").strip())


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Geo-grid local rank check")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--preflight", action="store_true", help="Run offline checks only")
    group.add_argument(
        "--preflight-online",
        action="store_true",
        help="Run offline checks plus one tasks_ready call against the provider",
    )
    parser.add_argument("--keyword", type=str, default=None)
    parser.add_argument("--business", type=str, default=None, help="Business name to look for")
    parser.add_argument("--center-lat", type=float, default=None)
    parser.add_argument("--center-lng", type=float, default=None)
    parser.add_argument("--radius-km", type=float, default=None)
    parser.add_argument("--grid-size", type=int, default=None)
    parser.add_argument("--shape", choices=SHAPES, default=None)
    parser.add_argument("--concurrency", type=int, default=None)
    parser.add_argument("--deadline", type=float, default=None, help="Grid deadline in seconds")
    parser.add_argument(
        "--provider",
        choices=("dataforseo", "synthetic"),
        default="dataforseo",
        help="Ranking provider; synthetic needs no credentials",
    )
    parser.add_argument(
        "--location",
        type=str,
        default=None,
        help="City/country name; submits a location code instead of coordinates",
    )
    parser.add_argument("--location-code", type=int, default=None)
    parser.add_argument("--seed", type=int, default=None, help="Synthetic provider seed override")
    parser.add_argument("--no-cache", action="store_true")
    parser.add_argument("--cache-path", type=str, default=config.CACHE_DB_PATH)
    parser.add_argument("--config", type=str, default=None, help="Path to geogrid_config.json")
    parser.add_argument("--out", type=str, default=config.OUTPUT_DIR)
    return parser.parse_args(argv)


def resolve_location_code(args: argparse.Namespace) -> Optional[int]:
    if args.location_code is not None:
        return args.location_code
    if args.location:
        return config.lookup_location_code(args.location)
    return None


def run_preflight(online: bool, location_code: Optional[int], config_loaded: bool) -> int:
    ok = True
    login_len = _env_len(config.DATAFORSEO_LOGIN_ENV)
    password_len = _env_len(config.DATAFORSEO_PASSWORD_ENV)

    if login_len and password_len:
        print("DataForSEO credentials: OK")
    else:
        print(
            f"DataForSEO credentials: MISSING ({config.DATAFORSEO_LOGIN_ENV} len={login_len}, "
            f"{config.DATAFORSEO_PASSWORD_ENV} len={password_len})"
        )
        ok = False

    print(f"Config file: {'loaded' if config_loaded else 'defaults'}")

    try:
        points = generate_grid(
            0.0, 0.0, config.DEFAULT_RADIUS_KM, config.DEFAULT_GRID_SIZE, config.DEFAULT_SHAPE
        )
        print(
            f"Default grid: OK ({config.DEFAULT_SHAPE} {config.DEFAULT_GRID_SIZE}x{config.DEFAULT_GRID_SIZE}, "
            f"{len(points)} points)"
        )
    except GridConfigError as exc:
        print(f"Default grid: FAIL ({exc})")
        ok = False

    print(
        "Poll policy: initial={initial}s, backoff={start}-{cap}s, task_deadline={task}s, grid_deadline={grid}s".format(
            initial=config.POLL_INITIAL_WAIT_SECONDS,
            start=config.POLL_BACKOFF_START_SECONDS,
            cap=config.POLL_BACKOFF_MAX_SECONDS,
            task=config.TASK_DEADLINE_SECONDS,
            grid=config.GRID_DEADLINE_SECONDS,
        )
    )
    if location_code is not None:
        print(f"Location code: {location_code}")

    if online:
        if not (login_len and password_len):
            print("Online tasks_ready call: FAIL (missing credentials)")
            ok = False
        else:
            try:
                provider = DataForSeoProvider.from_env(location_code=location_code)
                pending = provider.ready_task_ids(max_attempts=1)
                print(f"Online tasks_ready call: OK ({len(pending)} tasks ready)")
            except Exception as exc:
                print(f"Online tasks_ready call: FAIL ({exc})")
                ok = False

    print("Preflight: PASS" if ok else "Preflight: FAIL")
    return 0 if ok else 1


def _print_progress(result: GridResult, done: int, total: int) -> None:
    if result.error is not None:
        status = result.error.value
    elif result.rank is None:
        status = "unranked"
    else:
        status = f"#{result.rank}"
    logger.info("[%s/%s] point %s: %s", done, total, result.point.id, status)


def run_check(args: argparse.Namespace, location_code: Optional[int]) -> GeoGridReport:
    """Run the grid in a worker thread so Ctrl-C can cancel it cleanly."""
    metrics = RequestMetrics()
    policy = None
    if args.provider == "synthetic":
        # Synthetic tasks are ready as soon as they are submitted.
        policy = replace(PollPolicy.from_config(), initial_wait=0.0)
        provider = SyntheticProvider(
            args.center_lat,
            args.center_lng,
            config.DEFAULT_RADIUS_KM if args.radius_km is None else args.radius_km,
            args.business,
            seed=args.seed,
        )
    else:
        provider = DataForSeoProvider.from_env(location_code=location_code, metrics=metrics)

    cache = None
    if not args.no_cache and args.provider != "synthetic":
        cache = ResultCache(args.cache_path, config.CACHE_TTL_SECONDS)
    cancel_event = threading.Event()
    outcome: dict = {}

    def _target() -> None:
        try:
            outcome["report"] = run_geo_grid_check(
                args.keyword,
                args.business,
                args.center_lat,
                args.center_lng,
                radius_km=args.radius_km,
                grid_size=args.grid_size,
                shape=args.shape,
                concurrency=args.concurrency,
                deadline_seconds=args.deadline,
                provider=provider,
                cancel_event=cancel_event,
                cache=cache,
                metrics=metrics,
                policy=policy,
                on_result=_print_progress,
            )
        except BaseException as exc:
            outcome["error"] = exc

    worker = threading.Thread(target=_target, name="geogrid-run", daemon=True)
    worker.start()
    try:
        while worker.is_alive():
            try:
                worker.join(0.5)
            except KeyboardInterrupt:
                print("Cancelling grid check, writing partial results...", file=sys.stderr)
                cancel_event.set()
    finally:
        if cache is not None:
            cache.close()

    if "error" in outcome:
        raise outcome["error"]
    return outcome["report"]


def main(argv: Optional[list] = None) -> int:
    load_env()
    args = parse_args(argv)
    config_loaded = config.load_engine_config(args.config)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    location_code = resolve_location_code(args)

    if args.preflight or args.preflight_online:
        return run_preflight(args.preflight_online, location_code, config_loaded)

    missing = [
        flag
        for flag, value in (
            ("--keyword", args.keyword),
            ("--business", args.business),
            ("--center-lat", args.center_lat),
            ("--center-lng", args.center_lng),
        )
        if value is None
    ]
    if missing:
        print(f"Error: missing required arguments: {', '.join(missing)}", file=sys.stderr)
        return 2

    try:
        report = run_check(args, location_code)
    except (GridConfigError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    path = write_report(args.out, report)
    print(format_summary(report))
    print(f"Report written to {path}")
    return 130 if report.cancelled else 0


if __name__ == "__main__":
    raise SystemExit(main())
