"""Progress reporting for long runs.

ProgressStream feeds a Server-Sent Events response: the job runs on its own
thread and pushes `data: {...}` blocks through a queue that the response
generator drains. The browser only reads. If it goes away, the job keeps
running and its later progress is dropped.

LogReporter is the same report(stage, count, total) callable for places
with no stream (CLI, JSON endpoints).
"""

import json
import queue
import threading

import spotipy.exceptions

from errors import MigratorError
from log_setup import get_logger
from models import ProgressRecord

COMPLETE = "COMPLETE"
SSE_MIMETYPE = "text/event-stream"
SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}

_DONE = object()

log = get_logger("progress")


def sse_block(data):
    """Frame one JSON object as an SSE data block."""
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n"


def describe_failure(exc):
    """Turn an exception into the human-readable text shown after 'Error: '."""
    if isinstance(exc, spotipy.exceptions.SpotifyException):
        if exc.http_status == 401:
            return "Not authenticated"
        return f"Spotify API error {exc.http_status}: {exc.msg}"
    if isinstance(exc, MigratorError):
        return str(exc)
    return str(exc) or exc.__class__.__name__


class ProgressStream:
    """One-way progress channel from a background job to an SSE response."""

    def __init__(self, name="run"):
        self.name = name
        self._queue = queue.Queue()
        self._abandoned = threading.Event()
        self._dropped = 0
        self._thread = None

    def emit(self, stage, count=0, total=None):
        self._put(ProgressRecord(stage, count, total).to_dict())

    # A stream is itself a report(stage, count, total) callable.
    __call__ = emit

    def complete(self, payload):
        self._put({"stage": COMPLETE, **payload})

    def fail(self, message):
        self._put({"stage": f"Error: {message}", "count": 0})

    def close(self):
        self._queue.put(_DONE)

    @property
    def abandoned(self):
        return self._abandoned.is_set()

    def _put(self, data):
        if self._abandoned.is_set():
            self._dropped += 1
            log.debug(f"[{self.name}] client gone, dropped: {data.get('stage')}")
            return
        self._queue.put(sse_block(data))

    def __iter__(self):
        finished = False
        try:
            while True:
                block = self._queue.get()
                if block is _DONE:
                    finished = True
                    return
                yield block
        finally:
            if not finished:
                self._abandoned.set()
                log.info(f"[{self.name}] client disconnected; run continues without progress")

    def start(self, job):
        """Run job(self) on a background thread and return self for iteration.

        job receives this stream as its report callable and returns the dict
        that goes into the COMPLETE record. Any exception ends the stream
        with an 'Error: ...' record instead.
        """
        self._thread = threading.Thread(target=self._run, args=(job,), name=f"progress-{self.name}", daemon=True)
        self._thread.start()
        return self

    def _run(self, job):
        try:
            payload = job(self)
        except Exception as e:
            log.error(f"=== {self.name} failed: {describe_failure(e)} ===", exc_info=True)
            self.fail(describe_failure(e))
        else:
            log.info(f"=== {self.name} finished ===")
            self.complete(payload)
        finally:
            if self._dropped:
                log.info(f"[{self.name}] {self._dropped} progress records dropped after disconnect")
            self.close()


class LogReporter:
    """report(stage, count, total) that writes to a logger.

    A new stage is logged at INFO; repeats of the same stage (per-page
    counts) only at DEBUG.
    """

    def __init__(self, logger):
        self.log = logger
        self._last_stage = None

    def __call__(self, stage, count=0, total=None):
        progress = f"{count}/{total}" if total is not None else f"{count}"
        if stage == self._last_stage:
            self.log.debug(f"  {stage} {progress}")
            return
        self._last_stage = stage
        self.log.info(f"{stage} ({progress})")
