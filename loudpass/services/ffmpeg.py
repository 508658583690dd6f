"""ffmpeg engine session.

One :class:`EngineSession` owns the ffmpeg binary for the whole process.  The
binary is probed once (``ensure_ready``), every job gets a private scratch
directory (:class:`Workspace`) that is removed on every exit path, and only
one workspace can be open at a time because jobs must never overlap.
"""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterator, Optional, Sequence

from ..errors import EngineError, EngineNotReady, OutputReadError

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]


def run(cmd, timeout=None):
    return subprocess.run(
        cmd,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        encoding="utf-8",
        errors="replace",
        timeout=timeout,
    )


@dataclass(frozen=True)
class PassOutput:
    """Output declaration for one pass; no name means ffmpeg's null muxer."""

    name: Optional[str] = None
    options: Sequence[str] = ()


NULL_OUTPUT = PassOutput()


@dataclass
class Workspace:
    job_id: str
    root: Path

    def path(self, name: str) -> Path:
        p = (self.root / name).resolve()
        if p.parent != self.root.resolve():
            raise ValueError(f"{name!r} escapes the workspace")
        return p

    def write(self, name: str, data: bytes) -> Path:
        p = self.path(name)
        p.write_bytes(data)
        return p


class EngineSession:
    def __init__(self, work_dir, binary: str = "ffmpeg", runner: Runner = run, timeout: Optional[float] = None):
        self.work_dir = Path(work_dir)
        self.binary = binary
        self.runner = runner
        self.timeout = timeout
        self.version: Optional[str] = None
        self.load_count = 0
        self._ready = threading.Event()
        self._init_lock = threading.Lock()
        self._job_lock = threading.Lock()
        self._refs = 0
        self._refs_lock = threading.Lock()

    # -- lifecycle ---------------------------------------------------------

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    @property
    def scratch_root(self) -> Path:
        return self.work_dir / "engine"

    def ensure_ready(self) -> str:
        """Load the engine once; concurrent callers wait for the same load."""
        if self._ready.is_set():
            return self.version
        with self._init_lock:
            if not self._ready.is_set():
                self.version = self._load()
                self._ready.set()
                logger.info("engine ready: %s", self.version)
        return self.version

    def _load(self) -> str:
        self.load_count += 1
        try:
            proc = self.runner([self.binary, "-hide_banner", "-version"], timeout=self.timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise EngineNotReady(f"{self.binary} is not available: {e}") from e
        if proc.returncode != 0:
            raise EngineNotReady(f"{self.binary} -version exited with {proc.returncode}")
        lines = (proc.stdout or "").splitlines()
        return lines[0] if lines else self.binary

    def acquire(self) -> "EngineSession":
        with self._refs_lock:
            self._refs += 1
        return self

    def release(self) -> None:
        with self._refs_lock:
            if self._refs <= 0:
                raise RuntimeError("release() without matching acquire()")
            self._refs -= 1
            if self._refs == 0 and self.scratch_root.exists():
                shutil.rmtree(self.scratch_root, ignore_errors=True)

    @property
    def refs(self) -> int:
        return self._refs

    def __enter__(self):
        return self.acquire()

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False

    # -- workspaces --------------------------------------------------------

    def open_workspace(self, job_id: str) -> Workspace:
        root = self.scratch_root / job_id
        root.mkdir(parents=True, exist_ok=True)
        return Workspace(job_id=job_id, root=root)

    def cleanup(self, ws: Workspace) -> None:
        try:
            shutil.rmtree(ws.root)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("job %s: could not remove workspace %s: %s", ws.job_id, ws.root, e)

    @contextmanager
    def workspace(self, job_id: str) -> Iterator[Workspace]:
        """Hold the session and a private workspace for the length of a job."""
        with self:
            with self._job_lock:
                ws = self.open_workspace(job_id)
                try:
                    yield ws
                finally:
                    self.cleanup(ws)

    # -- passes ------------------------------------------------------------

    def run_pass(
        self,
        ws: Workspace,
        source: str,
        filter_spec: str,
        output: PassOutput = NULL_OUTPUT,
        inputs: Optional[Dict[str, bytes]] = None,
    ) -> str:
        """Run one ffmpeg pass and return its stderr.

        The loudnorm JSON block is only ever printed on stderr; stdout is
        ignored.
        """
        if not self.ready:
            raise EngineNotReady("Engine is not loaded yet.")
        try:
            for name, data in (inputs or {}).items():
                ws.write(name, data)
        except OSError as e:
            raise EngineError(f"could not stage input: {e}") from e

        cmd = [
            self.binary, "-nostdin", "-hide_banner", "-nostats", "-y",
            "-i", str(ws.path(source)),
            "-af", filter_spec,
            *output.options,
        ]
        if output.name is None:
            cmd += ["-f", "null", "-"]
        else:
            cmd.append(str(ws.path(output.name)))
        logger.debug("job %s: %s", ws.job_id, shlex.join(cmd))

        try:
            proc = self.runner(cmd, timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            raise EngineError(f"ffmpeg did not finish within {self.timeout:g}s") from e
        except OSError as e:
            raise EngineError(f"could not start ffmpeg: {e}") from e
        if proc.returncode != 0:
            err = (proc.stderr or "")[-400:].strip()
            logger.warning("job %s: ffmpeg exited with %s", ws.job_id, proc.returncode)
            raise EngineError(f"ffmpeg failed: {err}")
        return proc.stderr or ""

    def read_output(self, ws: Workspace, name: str) -> bytes:
        p = ws.path(name)
        if not p.exists() or p.stat().st_size == 0:
            raise OutputReadError(f"{name} is missing after a successful render")
        return p.read_bytes()
