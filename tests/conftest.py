import io
import os
import subprocess
import sys
import threading
import time
from pathlib import Path

import numpy as np
import soundfile as sf
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from loudpass import create_app
from loudpass.pipeline import NormalizationController
from loudpass.services.ffmpeg import EngineSession
from loudpass.store import ResultStore


LOUDNORM_BLOCK = """[Parsed_loudnorm_0 @ 0x5581d6c0]
{
\t"input_i" : "%(i)s",
\t"input_tp" : "%(tp)s",
\t"input_lra" : "%(lra)s",
\t"input_thresh" : "%(thresh)s",
\t"output_i" : "-15.02",
\t"output_tp" : "-14.98",
\t"output_lra" : "0.00",
\t"output_thresh" : "-25.02",
\t"normalization_type" : "linear",
\t"target_offset" : "%(offset)s"
}
"""

SOURCE = {"i": "-20.03", "tp": "-19.99", "lra": "0.00", "thresh": "-30.03", "offset": "0.03"}
RENDERED = {"i": "-15.04", "tp": "-14.96", "lra": "0.10", "thresh": "-25.04", "offset": "0.04"}


def loudnorm_log(values):
    return (
        "Input #0, wav, from 'input':\n"
        "  Duration: 00:00:10.00, bitrate: 1536 kb/s\n"
        + LOUDNORM_BLOCK % values
        + "size=N/A time=00:00:10.00 bitrate=N/A speed= 412x\n"
    )


class FakeFFmpeg:
    """Scripted stand-in for the ffmpeg binary, passed to EngineSession as ``runner``."""

    def __init__(self, fail_on=(), analysis_stderr=None, verify_stderr=None, delay=0.0, version_rc=0, write_output=True):
        self.fail_on = set(fail_on)
        self.analysis_stderr = analysis_stderr
        self.verify_stderr = verify_stderr
        self.delay = delay
        self.version_rc = version_rc
        self.write_output = write_output
        self.calls = []
        self.events = []
        self.version_calls = 0
        self._lock = threading.Lock()

    @staticmethod
    def kind(cmd):
        src = cmd[cmd.index("-i") + 1]
        if cmd[-1] != "-":
            return "render"
        return "verify" if src.endswith("output.mp3") else "analysis"

    def __call__(self, cmd, timeout=None):
        if "-version" in cmd:
            with self._lock:
                self.version_calls += 1
            time.sleep(self.delay)
            return subprocess.CompletedProcess(cmd, self.version_rc, "ffmpeg version 6.1-fake\n", "")

        kind = self.kind(cmd)
        workspace = Path(cmd[cmd.index("-i") + 1]).parent
        with self._lock:
            self.calls.append(list(cmd))
            self.events.append((kind, workspace.name, sorted(p.name for p in workspace.parent.iterdir())))
        time.sleep(self.delay)

        if kind in self.fail_on:
            return subprocess.CompletedProcess(cmd, 1, "", "Error while filtering: Invalid argument\n")
        if kind == "render":
            if self.write_output:
                Path(cmd[-1]).write_bytes(b"ID3\x04\x00fake-mp3-frames")
            stderr = "size=     235kB time=00:00:10.00 bitrate= 192.0kbits/s\n"
        elif kind == "analysis":
            stderr = loudnorm_log(SOURCE) if self.analysis_stderr is None else self.analysis_stderr
        else:
            stderr = loudnorm_log(RENDERED) if self.verify_stderr is None else self.verify_stderr
        # stdout carries a decoy block: only stderr may be parsed
        return subprocess.CompletedProcess(cmd, 0, '{"input_i": "0.0"}\n', stderr)


@pytest.fixture
def fake_ffmpeg():
    return FakeFFmpeg()


@pytest.fixture
def engine(tmp_path, fake_ffmpeg):
    return EngineSession(tmp_path / "work", binary="ffmpeg", runner=fake_ffmpeg)


@pytest.fixture
def store():
    return ResultStore()


@pytest.fixture
def controller(engine, store):
    return NormalizationController(engine, store)


@pytest.fixture
def app(tmp_path, engine):
    app = create_app({"TESTING": True, "WORK_DIR": str(tmp_path / "work"), "ENGINE_WARMUP": False}, engine=engine)
    yield app
    app.extensions["loudpass"].shutdown()


@pytest.fixture
def client(app):
    return app.test_client()


def sine_wav_bytes(sr=48000, dur=1.0, freq=1000.0, amp=0.1, channels=1):
    t = np.linspace(0, dur, int(sr * dur), endpoint=False)
    x = (amp * np.sin(2 * np.pi * freq * t)).astype(np.float32)
    if channels == 2:
        x = np.column_stack((x, x))
    buf = io.BytesIO()
    sf.write(buf, x, sr, format='WAV', subtype='PCM_16')
    return buf.getvalue()


@pytest.fixture
def wav_bytes():
    return sine_wav_bytes()


def wait_for(client, job_id, tries=100):
    for _ in range(tries):
        j = client.get(f'/jobs/{job_id}').get_json()
        if j.get('done'):
            return j
        time.sleep(0.05)
    raise AssertionError(f"job {job_id} did not finish")
