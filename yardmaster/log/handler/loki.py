import sys
import socket
import logging
import requests
import threading
from collections import deque
from typing import Any, Deque, Dict, List, Optional


class LokiHandler(logging.Handler):
    """
    Ships log records to Grafana Loki in batches.

    Records are buffered and pushed by a background thread every
    `flush_interval` seconds, or immediately once `batch_size` records are
    waiting. Network failures are reported on stderr and the batch is dropped;
    logging never blocks on Loki.
    """

    def __init__(
        self,
        url: str,
        org_id: Optional[str] = None,
        job: str = "yardmaster",
        batch_size: int = 200,
        flush_interval: float = 10,
    ) -> None:
        """
        :param url: Base URL of the Loki instance.
        :param org_id: Tenant sent as the `X-Scope-OrgID` header.
        :param job: Value of the `job` stream label.
        :param batch_size: Buffered records that trigger an early push.
        :param flush_interval: Seconds between periodic pushes.
        """
        super().__init__()
        self.url = f"{url.rstrip('/')}/loki/api/v1/push"
        self.org_id = org_id
        self.job = job
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self.hostname = socket.gethostname()

        self.buffer: Deque[Dict[str, Any]] = deque()
        self.buffer_lock = threading.Lock()
        self.session = requests.Session()

        self.stop_event = threading.Event()
        self.flush_thread = threading.Thread(target=self._periodic_flush, name="LokiFlushThread", daemon=True)
        self.flush_thread.start()

    def _periodic_flush(self) -> None:
        while not self.stop_event.wait(self.flush_interval):
            self.flush()
        self.flush()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = {
                "stream": {
                    "job": self.job,
                    "level": record.levelname.lower(),
                    "hostname": self.hostname,
                    "logger": record.name,
                },
                "values": [[str(int(record.created * 1e9)), self.format(record)]],
            }
            with self.buffer_lock:
                self.buffer.append(entry)
                full = len(self.buffer) >= self.batch_size
            if full:
                self.flush()
        except Exception:
            self.handleError(record)

    def _take_batch(self) -> List[Dict[str, Any]]:
        with self.buffer_lock:
            batch = list(self.buffer)
            self.buffer.clear()
        return batch

    def flush(self) -> None:
        """Pushes everything buffered so far. The network call runs outside the lock."""
        batch = self._take_batch()
        if not batch:
            return

        headers = {"Content-Type": "application/json"}
        if self.org_id:
            headers["X-Scope-OrgID"] = self.org_id
        try:
            response = self.session.post(self.url, json={"streams": batch}, headers=headers, timeout=5)
            # Loki answers a successful push with 204 No Content.
            if response.status_code != 204:
                print(f"ERROR: Loki returned {response.status_code}: {response.text}", file=sys.stderr)
        except requests.RequestException as e:
            print(f"ERROR: Failed to send {len(batch)} log records to Loki: {e}", file=sys.stderr)

    def close(self) -> None:
        self.stop_event.set()
        if self.flush_thread.is_alive():
            self.flush_thread.join(timeout=self.flush_interval + 2)
        self.session.close()
        super().close()
