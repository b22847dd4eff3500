"""
Run state machine.

Holds the single live run state, replaces it wholesale on every change
and broadcasts the new immutable snapshot to observers.
"""

import threading
from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, List

from ..utils.log import get_logger


class RunMode(str, Enum):
    """What the downloader is (or was last) doing."""

    IDLE = "idle"
    SITE_CRAWL = "site-crawl"
    SINGLE_PAGE_SCAN = "single-page-scan"
    DOWNLOAD_SCANNED = "download-scanned"


@dataclass(frozen=True)
class RunState:
    """Snapshot of the current run."""

    mode: RunMode = RunMode.IDLE
    running: bool = False
    current_url: str = ""
    queue_length: int = 0
    visited_count: int = 0
    found_count: int = 0
    done_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0
    last_message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["mode"] = self.mode.value
        return data


StateObserver = Callable[[RunState], None]


class RunStateMachine:
    """
    Owner of the live RunState and the cooperative stop flag.

    Every mutation runs under a reentrant lock: it swaps in a new frozen
    snapshot and notifies observers before the lock is released. Stop
    requests may come from other threads.
    """

    def __init__(self):
        self.logger = get_logger("state")
        self._state = RunState()
        self._observers: List[StateObserver] = []
        self._stop = threading.Event()
        self._lock = threading.RLock()

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def subscribe(self, observer: StateObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def unsubscribe(self, observer: StateObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def update(self, **changes) -> RunState:
        """Apply changes to the state and broadcast the new snapshot."""
        with self._lock:
            self._state = replace(self._state, **changes)
            self._notify()
            return self._state

    def increment(self, counter: str, amount: int = 1, **changes) -> RunState:
        """Bump one counter (e.g. 'done_count') together with other changes."""
        with self._lock:
            changes[counter] = getattr(self._state, counter) + amount
            return self.update(**changes)

    def begin(self, mode: RunMode, **initial) -> RunState:
        """
        Enter a run mode: clear the stop flag and reset all counters.

        Args:
            mode: Mode being entered
            **initial: Mode specific starting values
        """
        with self._lock:
            self._stop.clear()
            self._state = RunState(mode=mode, running=True, **initial)
            self._notify()
            return self._state

    def finish(self, message: str = None, **changes) -> RunState:
        """
        Leave the running state, keeping the mode of the finished run.

        Args:
            message: Terminal message; defaults to "stopped" or "done"
        """
        with self._lock:
            if message is None:
                message = "stopped" if self.stop_requested else "done"
            return self.update(running=False, last_message=message, **changes)

    def request_stop(self) -> None:
        """Ask the active driver to stop at its next checkpoint."""
        with self._lock:
            self._stop.set()
            self.update(last_message="stop requested")

    def reset(self, message: str = "") -> RunState:
        """Return to an idle, zeroed state."""
        with self._lock:
            self._state = RunState(last_message=message)
            self._notify()
            return self._state

    def _notify(self) -> None:
        snapshot = self._state
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception as e:
                self.logger.warning(f"State observer failed: {e}")
