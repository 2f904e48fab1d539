"""
ridgegaze/cli.py — Headless command-line runner.

Runs the gaze pipeline against a webcam or a video file and logs the
smoothed predictions. Mouse clicks and moves anywhere on the desktop train
the model while it runs (unless ``--no-mouse`` is given).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from typing import Optional

from ridgegaze import __version__
from ridgegaze.core.config import load_config
from ridgegaze.core.errors import MediaAccessError, UnknownModuleError
from ridgegaze.core.log import setup_logging
from ridgegaze.core.pipeline import GazePipeline
from ridgegaze.core.types import GazePrediction

logger = logging.getLogger("ridgegaze.cli")

# Seconds between INFO-level prediction lines
_REPORT_INTERVAL_S: float = 1.0


# ──────────────────────────────────────────────────────────────
# Argument parsing
# ──────────────────────────────────────────────────────────────

def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="ridgegaze",
        description="ridgegaze — real-time webcam gaze estimation",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    p.add_argument("--config", default=None, help="Path to ridgegaze.yaml")
    p.add_argument(
        "--regression",
        default=None,
        help="Regression module: ridge, weighted_ridge or threaded_ridge",
    )
    p.add_argument("--tracker", default=None, help="Tracker module (default: facemesh)")
    p.add_argument("--video", default=None, help="Replay a video file instead of the webcam")
    p.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Stop after this many seconds (runs until Ctrl-C if omitted)",
    )
    p.add_argument(
        "--no-mouse",
        action="store_true",
        help="Do not record mouse clicks and moves as training data",
    )
    p.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Override the configured log level",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p


def _overrides(args: argparse.Namespace) -> dict:
    """Translate CLI flags into a config override mapping."""
    overrides: dict = {}
    if args.regression:
        overrides.setdefault("regression", {})["name"] = args.regression
    if args.tracker:
        overrides.setdefault("tracker", {})["name"] = args.tracker
    if args.video:
        overrides.setdefault("camera", {})["static_video"] = args.video
    if args.no_mouse:
        overrides.setdefault("pipeline", {})["record_mouse_events"] = False
    return overrides


# ──────────────────────────────────────────────────────────────
# Runner
# ──────────────────────────────────────────────────────────────

class _PredictionReporter:
    """Gaze listener that logs at most one INFO line per interval."""

    def __init__(self, interval: float = _REPORT_INTERVAL_S) -> None:
        self._interval = interval
        self._last = 0.0
        self.count = 0

    def __call__(self, prediction: Optional[GazePrediction], elapsed_ms: float) -> None:
        if prediction is None:
            return
        self.count += 1
        logger.debug("gaze x=%.1f y=%.1f t=%.0fms", prediction.x, prediction.y, elapsed_ms)
        now = time.monotonic()
        if now - self._last >= self._interval:
            self._last = now
            logger.info("gaze x=%.1f y=%.1f", prediction.x, prediction.y)


async def _run(pipeline: GazePipeline, duration: Optional[float]) -> int:
    reporter = _PredictionReporter()
    pipeline.set_gaze_listener(reporter)
    try:
        await pipeline.begin()
    except MediaAccessError as exc:
        logger.error("%s", exc)
        return 2

    try:
        if duration is None:
            while True:
                await asyncio.sleep(3600)
        else:
            await asyncio.sleep(duration)
    finally:
        await pipeline.end()
        logger.info(
            "Stopped: %d predictions, %d iterations, %d extraction timeouts",
            reporter.count,
            pipeline.scheduler.iterations,
            pipeline.scheduler.extract_timeouts,
        )
    return 0


# ──────────────────────────────────────────────────────────────
# Main
# ──────────────────────────────────────────────────────────────

def main(argv: Optional[list[str]] = None) -> int:
    """Application entry point. Returns process exit code."""
    args = _build_parser().parse_args(argv)

    try:
        config = load_config(args.config, overrides=_overrides(args))
    except (FileNotFoundError, ValueError) as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 1

    setup_logging(config.logging, args.log_level)
    logger.info("ridgegaze %s starting", __version__)

    try:
        pipeline = GazePipeline(config)
        return asyncio.run(_run(pipeline, args.duration))
    except UnknownModuleError as exc:
        logger.error("%s", exc)
        return 1
    except ImportError as exc:
        logger.error("Missing optional dependency: %s (try: pip install ridgegaze[facemesh])", exc)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted — shutting down")
        return 0


if __name__ == "__main__":
    sys.exit(main())
