"""
Background application of verified webhook events.

The webhook route only verifies, parses and enqueues, so the gateway gets its
200 immediately. One consumer thread drains the queue, so events are applied
in arrival order.

A transition that raises (a store outage, say) is retried with exponential
backoff. Events that still fail are parked as dead letters and can be
replayed once the cause is fixed; applying an event twice is harmless.
"""

import logging
import queue
import threading
import time
from typing import List, Optional

from .payments import PaymentEvent
from .state_machine import PaymentStateMachine, TransitionResult

logger = logging.getLogger(__name__)

_STOP = object()


class WebhookWorker:

    def __init__(self, state_machine: PaymentStateMachine, inline: bool = False,
                 max_attempts: int = 3, retry_delay: float = 0.5):
        self.state_machine = state_machine
        self.inline = inline
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self._dead_letters: List[PaymentEvent] = []
        self._dead_lock = threading.Lock()
        self._queue: "queue.Queue" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._start_lock = threading.Lock()

    def start(self) -> None:
        if self.inline:
            return
        with self._start_lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._run, name="webhook-worker", daemon=True)
            self._thread.start()
        logger.info("Webhook worker started")

    def submit(self, event: PaymentEvent) -> Optional[TransitionResult]:
        """Inline mode applies now and returns the result; queued mode returns None."""
        if self.inline:
            return self._apply(event)
        self.start()
        self._queue.put(event)
        return None

    def join(self) -> None:
        """Block until every queued event has been applied."""
        if not self.inline:
            self._queue.join()

    def stop(self, timeout: float = 10.0) -> None:
        """Apply what is already queued, then stop the consumer."""
        thread = self._thread
        if thread is None:
            return
        self._queue.put(_STOP)
        thread.join(timeout=timeout)
        if thread.is_alive():
            logger.warning("Webhook worker did not stop within %.1fs", timeout)
        else:
            logger.info("Webhook worker stopped")
        self._thread = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def dead_letters(self) -> List[PaymentEvent]:
        with self._dead_lock:
            return list(self._dead_letters)

    def replay_dead_letters(self) -> int:
        """Re-apply parked events. Returns how many went through this time."""
        with self._dead_lock:
            events, self._dead_letters = self._dead_letters, []
        if events:
            logger.info("Replaying %d dead-letter webhook events", len(events))
        return sum(1 for event in events if self._apply(event) is not None)

    def _run(self) -> None:
        while True:
            event = self._queue.get()
            try:
                if event is _STOP:
                    return
                self._apply(event)
            finally:
                self._queue.task_done()

    def _apply(self, event: PaymentEvent) -> Optional[TransitionResult]:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return self.state_machine.apply(event)
            except Exception:
                if attempt == self.max_attempts:
                    logger.exception(
                        "Failed to apply %s event %s after %d attempts; parked for replay",
                        event.kind, event.event_id, attempt,
                    )
                    break
                delay = self.retry_delay * 2 ** (attempt - 1)
                logger.warning(
                    "Applying %s event %s failed (attempt %d/%d), retrying in %.1fs",
                    event.kind, event.event_id, attempt, self.max_attempts, delay, exc_info=True,
                )
                time.sleep(delay)

        with self._dead_lock:
            self._dead_letters.append(event)
        return None
