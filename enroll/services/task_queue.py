"""Task queue — in-process background work for the webhook pipeline.

Webhook handlers acknowledge the provider as soon as the event is recorded
in the ledger, then hand reconciliation + notification fan-out to this queue.

Modes:
    eager (TASK_QUEUE_EAGER=True)  — run the task inline in the caller's app
                                     context. Used in tests and local dev.
    threaded (default)             — a queue.Queue drained by daemon worker
                                     threads, each task in a fresh app context.

A task that raises is logged and dropped. The work it represents is not
lost: the ledger row stays unprocessed and `flask sweep-payment-events`
picks it up later.
"""

import logging
import queue
import threading

from flask import current_app

logger = logging.getLogger(__name__)


class TaskQueue:
    """Small Flask extension wrapping a worker-thread pool."""

    def __init__(self, app=None):
        self._queue = queue.Queue()
        self._threads = []
        self._lock = threading.Lock()
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        app.extensions["task_queue"] = self

    def enqueue(self, func, *args, **kwargs):
        """Schedule func(*args, **kwargs) to run outside the request.

        Must be called inside an app context.
        """
        app = current_app._get_current_object()

        if app.config.get("TASK_QUEUE_EAGER"):
            _run_inline(func, args, kwargs)
            return

        self._ensure_workers(app)
        self._queue.put((app, func, args, kwargs))

    @property
    def pending(self):
        """Approximate number of tasks waiting for a worker."""
        return self._queue.qsize()

    def join(self):
        """Block until every queued task has been processed."""
        self._queue.join()

    def _ensure_workers(self, app):
        with self._lock:
            alive = [t for t in self._threads if t.is_alive()]
            wanted = max(1, int(app.config.get("TASK_QUEUE_WORKERS", 2)))
            for i in range(len(alive), wanted):
                thread = threading.Thread(
                    target=self._worker,
                    name=f"task-queue-{i}",
                    daemon=True,
                )
                thread.start()
                alive.append(thread)
            self._threads = alive

    def _worker(self):
        while True:
            app, func, args, kwargs = self._queue.get()
            try:
                with app.app_context():
                    from enroll.extensions import db
                    try:
                        _run_inline(func, args, kwargs)
                    finally:
                        db.session.remove()
            finally:
                self._queue.task_done()


def _run_inline(func, args, kwargs):
    """Run a task, logging (never raising) any failure."""
    try:
        func(*args, **kwargs)
    except Exception as e:
        from enroll.extensions import db
        db.session.rollback()
        logger.error(f"Background task {func.__name__} failed: {e}", exc_info=True)
