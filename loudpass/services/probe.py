import io
import json
import logging
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path

import soundfile as sf

from ..errors import UnsupportedAudio
from .ffmpeg import run

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClipInfo:
    duration: float
    samplerate: int
    channels: int


def probe_clip(data: bytes) -> ClipInfo:
    """Read duration/rate/channels from the header of an uploaded clip."""
    if not data:
        raise UnsupportedAudio("Empty upload.")
    try:
        info = sf.info(io.BytesIO(data))
    except (RuntimeError, sf.LibsndfileError) as e:
        raise UnsupportedAudio(f"Could not read audio: {e}") from e
    return ClipInfo(duration=float(info.duration), samplerate=int(info.samplerate), channels=int(info.channels))


def ffprobe_clip(data: bytes, binary: str = "ffprobe", runner=None, tmp_dir=None) -> ClipInfo:
    """Probe containers libsndfile cannot open (AAC, Opus in WebM, ...) with ffprobe."""
    with tempfile.TemporaryDirectory(dir=tmp_dir) as d:
        path = Path(d) / "upload"
        path.write_bytes(data)
        try:
            proc = (runner or run)([
                binary,
                "-v",
                "error",
                "-select_streams",
                "a:0",
                "-show_entries",
                "stream=sample_rate,channels:format=duration",
                "-of",
                "json",
                str(path),
            ])
        except (OSError, subprocess.SubprocessError) as e:
            raise UnsupportedAudio(f"Could not probe audio: {e}") from e
    if proc.returncode != 0:
        raise UnsupportedAudio(f"Could not read audio: {proc.stderr.strip()[-200:]}")
    try:
        info = json.loads(proc.stdout)
        stream = info["streams"][0]
        return ClipInfo(
            duration=float(info["format"]["duration"]),
            samplerate=int(stream["sample_rate"]),
            channels=int(stream["channels"]),
        )
    except (ValueError, KeyError, IndexError, TypeError) as e:
        raise UnsupportedAudio("No audio stream found.") from e


def probe_upload(data: bytes, ffprobe: str = "ffprobe", runner=None, tmp_dir=None) -> ClipInfo:
    try:
        return probe_clip(data)
    except UnsupportedAudio:
        if not data:
            raise
        logger.debug("libsndfile rejected upload, trying %s", ffprobe)
    return ffprobe_clip(data, binary=ffprobe, runner=runner, tmp_dir=tmp_dir)


def validate_clip(info: ClipInfo, max_seconds: float):
    if info.duration <= 0:
        raise UnsupportedAudio("Audio clip is empty.")
    if info.duration > max_seconds:
        raise UnsupportedAudio(f"Audio must be at most {max_seconds:g} seconds long.")
    if info.channels < 1:
        raise UnsupportedAudio("Audio has no channels.")
