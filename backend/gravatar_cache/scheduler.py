"""
Eviction Scheduler

Runs the full cache wipe on a recurring interval (weekly by default).

The schedule is persisted as a small JSON file so it survives restarts:

{
  "hook": "delete_gravatars_folder",
  "interval": 604800,
  "next_run": 1760000000.0
}

Only one schedule exists at a time, registering again is a no-op, and
only the primary node of a multi-node deployment registers it.
"""

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Callable, Optional, Union

logger = logging.getLogger(__name__)

HOOK_NAME = "delete_gravatars_folder"


class EvictionScheduler:
    """Persisted recurring schedule for a single callback."""

    def __init__(
        self,
        state_file: Union[str, Path],
        callback: Callable[[], bool],
        interval_seconds: int,
        primary_node: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.state_file = Path(state_file)
        self.callback = callback
        self.interval_seconds = interval_seconds
        self.primary_node = primary_node
        self._clock = clock

    def _load_state(self) -> Optional[dict]:
        """Load the schedule from disk, None if there is none."""
        if not self.state_file.exists():
            return None
        try:
            with open(self.state_file, "r") as f:
                state = json.load(f)
            float(state["next_run"])
            return state
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"[EvictionScheduler] Ignoring unreadable schedule {self.state_file}: {e}")
            return None

    def _save_state(self, next_run: float) -> bool:
        state = {
            "hook": HOOK_NAME,
            "interval": self.interval_seconds,
            "next_run": next_run,
        }
        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            tmp_file = self.state_file.with_name(self.state_file.name + ".tmp")
            with open(tmp_file, "w") as f:
                json.dump(state, f, indent=2)
            tmp_file.replace(self.state_file)
            return True
        except OSError as e:
            logger.error(f"[EvictionScheduler] Failed to save schedule: {e}")
            return False

    def is_scheduled(self) -> bool:
        return self._load_state() is not None

    def next_run(self) -> Optional[float]:
        state = self._load_state()
        return float(state["next_run"]) if state else None

    def register(self) -> bool:
        """
        Register the recurring wipe. The first run is due immediately.

        Returns:
            True if a new schedule was created, False if it already
            existed or this isn't the primary node.
        """
        if not self.primary_node:
            logger.debug("[EvictionScheduler] Not the primary node, skipping registration")
            return False

        if self.is_scheduled():
            return False

        if not self._save_state(self._clock()):
            return False

        logger.info(
            f"[EvictionScheduler] Scheduled {HOOK_NAME} every {self.interval_seconds}s"
        )
        return True

    def unregister(self) -> bool:
        """Remove the schedule. Safe to call when nothing is scheduled."""
        try:
            self.state_file.unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"[EvictionScheduler] Failed to remove schedule: {e}")
            return False
        logger.info(f"[EvictionScheduler] Unscheduled {HOOK_NAME}")
        return True

    def run_pending(self) -> bool:
        """
        Run the callback if it is due, then reschedule.

        Missed runs collapse into one. A failing callback is logged and
        retried at the next interval.

        Returns:
            True if the callback ran.
        """
        if not self.primary_node:
            return False

        state = self._load_state()
        if state is None:
            return False

        now = self._clock()
        next_run = float(state["next_run"])
        if now < next_run:
            return False

        try:
            succeeded = self.callback()
        except Exception as e:
            logger.error(f"[EvictionScheduler] {HOOK_NAME} raised: {e}", exc_info=True)
            succeeded = False

        if not succeeded:
            logger.warning(f"[EvictionScheduler] {HOOK_NAME} failed, deferring to next run")

        while next_run <= now:
            next_run += self.interval_seconds
        self._save_state(next_run)
        return True

    async def run_forever(self, poll_seconds: float = 60.0) -> None:
        """Poll run_pending() until cancelled. The wipe runs in a worker thread."""
        logger.info(f"[EvictionScheduler] Polling every {poll_seconds}s")
        while True:
            await asyncio.to_thread(self.run_pending)
            await asyncio.sleep(poll_seconds)
