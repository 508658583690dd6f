"""Asynchronous job submission in front of the single-worker controller."""

from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, Optional, Union

from .errors import NormalizationError
from .models.specs import Job, Result, Settings
from .pipeline import JobState, NormalizationController

logger = logging.getLogger(__name__)

Outcome = Union[Result, BaseException]


class JobHandle:
    def __init__(self, job_id: str, filename: str):
        self.job_id = job_id
        self.filename = filename
        self.state = JobState.QUEUED
        self.future: Optional[Future] = None

    def _set_state(self, state: JobState):
        self.state = state

    @property
    def done(self) -> bool:
        return self.future is not None and self.future.done()

    @property
    def error(self) -> Optional[BaseException]:
        if not self.done:
            return None
        return self.future.exception()

    @property
    def result(self) -> Optional[Result]:
        if not self.done or self.future.exception() is not None:
            return None
        return self.future.result()

    def to_dict(self) -> dict:
        err = self.error
        if isinstance(err, NormalizationError):
            error = err.to_dict()
        elif err is not None:
            error = {"stage": None, "type": type(err).__name__, "message": str(err)}
        else:
            error = None
        result = self.result
        return {
            "job": self.job_id,
            "filename": self.filename,
            "state": self.state.value,
            "done": self.done,
            "error": error,
            "result": result.to_dict() if result else None,
        }


class JobRunner:
    """Accepts jobs immediately and runs them one at a time in submission order."""

    def __init__(self, controller: NormalizationController):
        self.controller = controller
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="loudpass-worker")
        self._handles: Dict[str, JobHandle] = {}
        self._lock = threading.Lock()

    @property
    def store(self):
        return self.controller.store

    @property
    def session(self):
        return self.controller.session

    def submit(self, data: bytes, filename: str, settings: Settings) -> JobHandle:
        job = Job(job_id=uuid.uuid4().hex[:12], data=data, filename=filename, settings=settings)
        handle = JobHandle(job.job_id, filename)
        handle.future = self._executor.submit(self.controller.run, job, handle._set_state)
        with self._lock:
            self._handles[job.job_id] = handle
        logger.info("job %s: queued %s", job.job_id, filename)
        return handle

    def on_complete(self, handle: JobHandle, callback: Callable[[Outcome], None]) -> None:
        """Call ``callback`` with the Result, or the exception the job raised."""

        def _done(fut: Future):
            exc = fut.exception()
            callback(exc if exc is not None else fut.result())

        handle.future.add_done_callback(_done)

    def get(self, job_id: str) -> Optional[JobHandle]:
        with self._lock:
            return self._handles.get(job_id)

    def warm_up(self) -> threading.Thread:
        """Load the engine in the background so the first job does not pay for it."""

        def _load():
            try:
                self.session.ensure_ready()
            except NormalizationError as e:
                logger.warning("engine warm-up failed: %s", e.message)

        t = threading.Thread(target=_load, name="loudpass-warmup", daemon=True)
        t.start()
        return t

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
