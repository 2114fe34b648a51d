from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict

from app.observability import bind_request_id, current_request_id, observe_side_effect, observe_side_effect_retry


logger = logging.getLogger("app")


@dataclass
class OutboundTask:
    kind: str
    action: Callable[[], Any]
    context: Dict[str, Any] = field(default_factory=dict)
    request_id: str = "n/a"


_STOP = object()


class SideEffectDispatcher:
    """Runs notification and email calls away from the caller's success path.

    ``thread`` mode hands tasks to a daemon worker through a bounded queue;
    ``inline`` mode runs them immediately. In both modes a failing task is
    retried up to ``max_attempts`` times, then logged and dropped.
    """

    def __init__(
        self,
        *,
        mode: str = "thread",
        max_attempts: int = 3,
        retry_backoff_ms: int = 500,
        queue_size: int = 1000,
        sleep_fn: Callable[[float], None] = time.sleep,
    ) -> None:
        normalized_mode = str(mode or "thread").strip().lower()
        if normalized_mode not in {"thread", "inline"}:
            raise ValueError(f"invalid side effects mode: {mode}")
        self.mode = normalized_mode
        self.max_attempts = max(1, int(max_attempts))
        self.retry_backoff_ms = max(0, int(retry_backoff_ms))
        self._sleep = sleep_fn
        self._queue: queue.Queue = queue.Queue(maxsize=max(1, int(queue_size)))
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    def submit(self, kind: str, action: Callable[[], Any], **context: Any) -> None:
        task = OutboundTask(kind=kind, action=action, context=context, request_id=current_request_id(default="n/a"))
        if self.mode == "inline":
            self._run(task)
            return
        self.start()
        try:
            self._queue.put_nowait(task)
        except queue.Full:
            observe_side_effect(kind, "dropped")
            logger.error("side_effect_dropped", extra={"side_effect": kind, **context})

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._run_loop, name="side-effect-dispatcher", daemon=True)
            self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is None or not thread.is_alive():
            return
        self._queue.put(_STOP)
        thread.join(timeout)

    def drain(self, timeout: float = 5.0) -> bool:
        """Wait until every queued task has been processed."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self._queue.unfinished_tasks == 0:
                return True
            time.sleep(0.01)
        return self._queue.unfinished_tasks == 0

    def pending(self) -> int:
        return self._queue.qsize()

    def health(self) -> Dict[str, Any]:
        alive = bool(self._thread and self._thread.is_alive())
        return {
            "mode": self.mode,
            "worker_alive": alive if self.mode == "thread" else None,
            "pending": self.pending(),
        }

    def _run_loop(self) -> None:
        while True:
            task = self._queue.get()
            try:
                if task is _STOP:
                    return
                self._run(task)
            finally:
                self._queue.task_done()

    def _run(self, task: OutboundTask) -> None:
        with bind_request_id(task.request_id):
            for attempt in range(1, self.max_attempts + 1):
                try:
                    task.action()
                except Exception:  # noqa: BLE001
                    if attempt >= self.max_attempts:
                        observe_side_effect(task.kind, "failed")
                        logger.exception(
                            "side_effect_failed",
                            extra={"side_effect": task.kind, "attempts": attempt, **task.context},
                        )
                        return
                    observe_side_effect_retry()
                    logger.warning(
                        "side_effect_retry",
                        extra={"side_effect": task.kind, "attempt": attempt, **task.context},
                    )
                    if self.retry_backoff_ms:
                        self._sleep((self.retry_backoff_ms * (2 ** (attempt - 1))) / 1000.0)
                    continue
                observe_side_effect(task.kind, "succeeded")
                return
