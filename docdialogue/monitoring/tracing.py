"""Per-request trace identifiers and structured stage timing logs."""

import json
import logging
import time
import uuid
from typing import Any, Dict, List, Optional

from prometheus_client import Histogram

logger = logging.getLogger(__name__)


def new_trace_id() -> str:
    """Return a fresh correlation token for one request."""
    return uuid.uuid4().hex


class RequestTrace:
    """
    Emit latency, warning and error lines tagged with one trace id.

    Latency records are single log lines with a JSON payload so pipeline
    latency can be reconstructed offline, e.g.
    ``[latency][ingest] trace=ab12 {"step": "embed", "ms": 812, "vectors": 4}``.
    """

    def __init__(
        self,
        scope: str,
        trace_id: Optional[str] = None,
        histogram: Optional[Histogram] = None,
    ) -> None:
        self.scope = scope
        self.trace_id = trace_id or new_trace_id()
        self.histogram = histogram
        self.started = time.perf_counter()
        self.records: List[Dict[str, Any]] = []

    @staticmethod
    def clock() -> float:
        return time.perf_counter()

    def latency(self, step: str, since: Optional[float] = None, **data: Any) -> Dict[str, Any]:
        """
        Log the elapsed time of a stage.

        Args:
            step: Stage name.
            since: ``clock()`` value at stage start; defaults to request start.
            data: Stage-specific counters.

        Returns:
            The structured record that was logged.
        """
        elapsed = self.clock() - (self.started if since is None else since)
        record = {"step": step, "ms": int(elapsed * 1000), **data}
        self.records.append(record)
        if self.histogram is not None:
            self.histogram.labels(stage=step).observe(elapsed)
        logger.info(
            "[latency][%s] trace=%s %s",
            self.scope, self.trace_id, json.dumps(record, default=str))
        return record

    def warn(self, message: str, detail: Optional[str] = None) -> None:
        suffix = f" :: {detail}" if detail else ""
        logger.warning("[warn][%s] trace=%s %s%s",
                       self.scope, self.trace_id, message, suffix)

    def error(self, message: str, err: Optional[BaseException] = None) -> None:
        suffix = f" :: {err}" if err is not None else ""
        logger.error("[error][%s] trace=%s %s%s",
                     self.scope, self.trace_id, message, suffix,
                     exc_info=err)
