"""
Audit trail for sensitive actions.

Entries are handed to a background worker and written to `audit_logs` at
most once. A failed write is logged and dropped; it never reaches the
request that produced the entry.
"""
import logging
import queue
import threading
from typing import Any, Dict, Optional

from fastapi import Request
from pymongo.collection import Collection
from pymongo.database import Database

from database import AUDIT_LOGS, utcnow
from rate_limit import client_address

logger = logging.getLogger(__name__)

_STOP = object()


class AuditQueue:
    def __init__(self, maxsize: int = 1000):
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=maxsize)
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self.written = 0
        self.dropped = 0

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._run, name="audit-writer", daemon=True)
            self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is None:
            return
        self._queue.put(_STOP)
        thread.join(timeout)

    def enqueue(self, collection: Collection, entry: Dict[str, Any]) -> bool:
        self.start()
        try:
            self._queue.put_nowait((collection, entry))
        except queue.Full:
            self.dropped += 1
            logger.error("Audit queue full, dropping %s entry", entry.get("action"))
            return False
        return True

    def join(self) -> None:
        """Block until every queued entry has been attempted."""
        self._queue.join()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                collection, entry = item
                self._write(collection, entry)
            finally:
                self._queue.task_done()

    def _write(self, collection: Collection, entry: Dict[str, Any]) -> None:
        try:
            collection.insert_one(entry)
            self.written += 1
        except Exception:
            self.dropped += 1
            logger.exception("Audit log error for action %s", entry.get("action"))


audit_queue = AuditQueue()


def record(db: Database, request: Request, action: str, actor=None, **fields: Any) -> None:
    entry: Dict[str, Any] = {"action": action}
    if actor is not None:
        entry["userId"] = actor.user_id
        entry["userEmail"] = actor.email
    entry.update(fields)
    entry["timestamp"] = utcnow()
    entry["ipAddress"] = client_address(request)
    audit_queue.enqueue(db[AUDIT_LOGS], entry)
