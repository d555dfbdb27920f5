"""Premium expiry sweeper worker.

Usage:
    python -m moodjournal.workers.expiry_sweeper --once
    python -m moodjournal.workers.expiry_sweeper --loop

The API process starts an ExpirySweeper from its lifespan when
SWEEPER_ENABLED=1. Interval defaults to 24h (5 minutes when ENV=development)
and can be pinned with SWEEPER_INTERVAL_SECONDS.
"""
from __future__ import annotations

import argparse
import logging
import threading
import time
from typing import Optional

from moodjournal.core.clock import Clock, get_clock
from moodjournal.core.config import settings
from moodjournal.features.sweeper.service import SweepStats, run_sweep

logger = logging.getLogger("moodjournal.sweeper")


class ExpirySweeper:
    """Runs the expiry sweep on a fixed interval in a daemon thread.

    trigger_now() runs one pass synchronously on the caller's thread. A lock
    keeps timer and manual passes from overlapping.
    """

    def __init__(
        self,
        *,
        interval_seconds: Optional[float] = None,
        clock: Optional[Clock] = None,
        run_on_start: bool = True,
    ):
        self.interval_seconds = interval_seconds or settings.sweeper_interval_seconds()
        self.clock = clock
        self.run_on_start = run_on_start
        self._stop = threading.Event()
        self._run_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self.last_stats: Optional[SweepStats] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="expiry-sweeper", daemon=True)
        self._thread.start()
        logger.info("[sweeper] started", extra={"interval_seconds": self.interval_seconds})

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None
        logger.info("[sweeper] stopped")

    def trigger_now(self) -> SweepStats:
        with self._run_lock:
            now = (self.clock or get_clock()).now()
            self.last_stats = run_sweep(now)
            return self.last_stats

    def _loop(self) -> None:
        if self.run_on_start:
            self._run_guarded()
        while not self._stop.wait(self.interval_seconds):
            self._run_guarded()

    def _run_guarded(self) -> None:
        try:
            self.trigger_now()
        except Exception:
            # Keep the timer alive; the next pass recomputes everything
            logger.exception("[sweeper] pass failed")


def main() -> None:
    from moodjournal.core.logging import configure_logging

    parser = argparse.ArgumentParser(description="Premium expiry sweeper")
    parser.add_argument("--once", action="store_true", help="Run a single sweep and exit")
    parser.add_argument("--loop", action="store_true", help="Run in continuous loop")
    parser.add_argument(
        "--sleep",
        type=int,
        default=None,
        help="Seconds between sweeps (when --loop)",
    )
    args = parser.parse_args()

    configure_logging(settings.ENV)
    sweeper = ExpirySweeper(interval_seconds=args.sleep)

    if args.once:
        stats = sweeper.trigger_now()
        print(f"[sweeper] {stats.as_dict()}")
        return

    print(f"[sweeper] Starting loop (sleep={sweeper.interval_seconds}s). CTRL+C to stop.")
    sweeper.start()
    try:
        while sweeper.is_running:
            time.sleep(1)
    except KeyboardInterrupt:
        sweeper.stop()
        print("[sweeper] Stopped")


if __name__ == "__main__":
    main()
