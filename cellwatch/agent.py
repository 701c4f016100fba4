from __future__ import annotations

import argparse
import logging
import signal
import threading
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .config import ConfigError, load_config_from_env
from .delivery import LoggingNotificationSink
from .observability import configure_logging
from .pipeline import CollectionPipeline
from .sources import SUPPORTED_SOURCES, build_sample_source

logger = logging.getLogger("cellwatch.agent")


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="cellwatch agent (cell + position sampling and upload)")
    parser.add_argument("--source", choices=SUPPORTED_SOURCES, default=None, help="Override CELLWATCH_SOURCE")
    parser.add_argument(
        "--duration-s",
        type=float,
        default=0.0,
        help="Stop after N seconds (0 runs until interrupted)",
    )
    parser.add_argument(
        "--no-final-flush",
        action="store_true",
        help="Do not ship the partial batch on shutdown",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    # Load repo-level .env (if present), then package-local overrides.
    load_dotenv()
    load_dotenv(Path(__file__).resolve().parent / ".env")

    args = _parse_args(argv)

    try:
        config = load_config_from_env()
        if args.source:
            config = replace(config, source=args.source)
        source = build_sample_source(config)
    except ConfigError as exc:
        raise SystemExit(f"[cellwatch-agent] invalid config: {exc}") from exc

    configure_logging(level=config.log_level, log_format=config.log_format, device_id=config.device_id)

    pipeline = CollectionPipeline(config, source, sink=LoggingNotificationSink())

    done = threading.Event()

    def _handle_signal(signum: int, _frame: object) -> None:
        logger.info("received signal %s; shutting down", signum)
        done.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    logger.info(
        "device_id=%s collector=%s source=%s interval_ms=%s capacity=%s",
        config.device_id,
        config.collector_url,
        config.source,
        config.sample_interval_ms,
        config.buffer_capacity,
    )

    pipeline.start()
    try:
        done.wait(args.duration_s if args.duration_s > 0 else None)
    finally:
        # Bound the final flush by one primary send cycle.
        flush_budget_s = config.primary_attempts * (
            config.connect_timeout_s + config.read_timeout_s + config.primary_retry_delay_s
        )
        pipeline.stop(flush=not args.no_final_flush, timeout_s=flush_budget_s)
        metrics = pipeline.metrics()
        logger.info("final metrics %s", metrics, extra={"fields": metrics})


if __name__ == "__main__":
    main()
