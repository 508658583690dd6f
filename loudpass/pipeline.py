"""Three-pass loudness normalization for one job.

analyze (measure only) -> render (corrective loudnorm + MP3 encode) ->
verify (measure the rendered file).  Pass 1's numbers flow unchanged into
pass 2; pass 3 reports what encoding actually produced.
"""

from __future__ import annotations

import enum
import logging
import time
import uuid
from typing import Callable, Optional

from .errors import MeasurementInvalid, MeasurementNotFound, NormalizationError
from .models.specs import Job, Measurement, Result
from .services.ffmpeg import NULL_OUTPUT, EngineSession, PassOutput, Workspace
from .services.loudness import parse_measurement
from .services.loudnorm_filter import build_analysis_filter, build_output_options, build_render_filter
from .store import ResultStore
from .utils.fs import output_filename, sha256_bytes

logger = logging.getLogger(__name__)

INPUT_NAME = "input"
OUTPUT_NAME = "output.mp3"


class JobState(str, enum.Enum):
    QUEUED = "queued"
    ANALYZING = "analyzing"
    MEASURED = "measured"
    RENDERING = "rendering"
    VERIFYING = "verifying"
    DONE = "done"
    FAILED = "failed"


StateCallback = Callable[[JobState], None]


def _round1(value: Optional[float]) -> Optional[float]:
    return None if value is None else round(value, 1)


class NormalizationController:
    def __init__(self, session: EngineSession, store: ResultStore):
        self.session = session
        self.store = store

    def run(self, job: Job, on_state: Optional[StateCallback] = None) -> Result:
        """Drive ``job`` through all three passes and store its Result.

        Raises a :class:`NormalizationError` with ``stage`` set to the state
        the job was in when it failed.  Nothing is stored for a failed job.
        """
        state = JobState.QUEUED

        def advance(new: JobState):
            nonlocal state
            logger.info("job %s: %s -> %s", job.job_id, state.value, new.value)
            state = new
            if on_state:
                on_state(new)

        try:
            advance(JobState.ANALYZING)
            self.session.ensure_ready()
            with self.session.workspace(job.job_id) as ws:
                result = self._run_passes(job, ws, advance)
            self.store.append(result)
            advance(JobState.DONE)
            return result
        except NormalizationError as e:
            e.stage = state.value
            logger.warning("job %s failed during %s: %s: %s", job.job_id, state.value, type(e).__name__, e.message)
            advance(JobState.FAILED)
            raise
        except Exception:
            logger.exception("job %s crashed during %s", job.job_id, state.value)
            advance(JobState.FAILED)
            raise

    def _timed_pass(self, job: Job, ws: Workspace, label: str, source: str, graph: str,
                    output: PassOutput = NULL_OUTPUT, inputs=None) -> str:
        t0 = time.monotonic()
        text = self.session.run_pass(ws, source, graph, output, inputs=inputs)
        logger.info("job %s: %s pass took %.2fs", job.job_id, label, time.monotonic() - t0)
        return text

    def _run_passes(self, job: Job, ws: Workspace, advance) -> Result:
        settings = job.settings
        analysis = build_analysis_filter(settings)

        # pass 1: measure the source
        text = self._timed_pass(job, ws, "analysis", INPUT_NAME, analysis, inputs={INPUT_NAME: job.data})
        measured = parse_measurement(text)
        logger.info("job %s: measured %s", job.job_id, measured)
        advance(JobState.MEASURED)

        # pass 2: corrective render
        advance(JobState.RENDERING)
        render = build_render_filter(settings, measured)
        out = PassOutput(OUTPUT_NAME, tuple(build_output_options(settings)))
        self._timed_pass(job, ws, "render", INPUT_NAME, render, out)

        # pass 3: re-measure what was written
        advance(JobState.VERIFYING)
        text = self._timed_pass(job, ws, "verify", OUTPUT_NAME, analysis)
        final = self._verify(job, text)

        data = self.session.read_output(ws, OUTPUT_NAME)
        return Result(
            result_id=uuid.uuid4().hex[:12],
            job_id=job.job_id,
            filename=output_filename(job.filename, settings.prefix, settings.suffix),
            source_filename=job.filename,
            data=data,
            sha256=sha256_bytes(data),
            settings=settings,
            input_measurement=measured,
            final_i=_round1(final.input_i) if final else None,
            final_tp=_round1(final.input_tp) if final else None,
        )

    def _verify(self, job: Job, text: str) -> Optional[Measurement]:
        try:
            return parse_measurement(text)
        except (MeasurementNotFound, MeasurementInvalid) as e:
            # the render is usable without a readout
            logger.warning("job %s: verification unreadable, final metrics unknown: %s", job.job_id, e.message)
            return None
