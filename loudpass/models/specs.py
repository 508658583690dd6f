import math
from dataclasses import dataclass, field
from typing import Mapping, Optional

from ..errors import SettingsError

SAMPLE_RATES = (8000, 11025, 12000, 16000, 22050, 24000, 32000, 44100, 48000)
BITRATES = (64, 96, 128, 160, 192, 256, 320)
CHANNEL_LAYOUTS = {"stereo": ("Stereo", 2), "mono": ("Mono", 1)}

# loudnorm only accepts targets inside these bounds
I_RANGE = (-70.0, -5.0)
TP_RANGE = (-9.0, 0.0)
TARGET_LRA = 11.0

OUTPUT_EXT = ".mp3"
OUTPUT_MIMETYPE = "audio/mpeg"


def _number(form: Mapping, key: str, default: float) -> float:
    raw = form.get(key)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise SettingsError(f"{key} must be a number, got {raw!r}")
    if not math.isfinite(value):
        raise SettingsError(f"{key} must be finite")
    return value


def _choice(form: Mapping, key: str, default: int, allowed) -> int:
    raw = form.get(key)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        value = int(str(raw).strip())
    except ValueError:
        raise SettingsError(f"{key} must be one of {list(allowed)}, got {raw!r}")
    if value not in allowed:
        raise SettingsError(f"{key} must be one of {list(allowed)}, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    target_i: float = -15.0
    target_tp: float = -2.0
    sample_rate: int = 48000
    bitrate: int = 192
    channels: str = "stereo"
    prefix: str = ""
    suffix: str = ""

    def __post_init__(self):
        if not (I_RANGE[0] <= self.target_i <= I_RANGE[1]):
            raise SettingsError(f"loudness must be between {I_RANGE[0]} and {I_RANGE[1]} LUFS")
        if not (TP_RANGE[0] <= self.target_tp <= TP_RANGE[1]):
            raise SettingsError(f"peak must be between {TP_RANGE[0]} and {TP_RANGE[1]} dBTP")
        if self.sample_rate not in SAMPLE_RATES:
            raise SettingsError(f"unsupported sample rate {self.sample_rate}")
        if self.bitrate not in BITRATES:
            raise SettingsError(f"unsupported bitrate {self.bitrate}")
        if self.channels not in CHANNEL_LAYOUTS:
            raise SettingsError(f"channels must be one of {sorted(CHANNEL_LAYOUTS)}")

    @property
    def target_lra(self) -> float:
        return TARGET_LRA

    @property
    def channel_count(self) -> int:
        return CHANNEL_LAYOUTS[self.channels][1]

    @property
    def sample_rate_label(self) -> str:
        return f"{self.sample_rate} Hz"

    @property
    def bitrate_label(self) -> str:
        return f"{self.bitrate} kbps"

    @property
    def channels_label(self) -> str:
        return CHANNEL_LAYOUTS[self.channels][0]

    @classmethod
    def from_form(cls, form: Mapping) -> "Settings":
        """Build settings from submitted form fields, falling back to defaults."""
        channels = (form.get("channels") or "stereo").strip().lower()
        return cls(
            target_i=_number(form, "loudness", cls.target_i),
            target_tp=_number(form, "peak", cls.target_tp),
            sample_rate=_choice(form, "sample_rate", cls.sample_rate, SAMPLE_RATES),
            bitrate=_choice(form, "bitrate", cls.bitrate, BITRATES),
            channels=channels,
            prefix=(form.get("prefix") or "").strip(),
            suffix=(form.get("suffix") or "").strip(),
        )


@dataclass(frozen=True)
class Measurement:
    input_i: float
    input_lra: float
    input_tp: float
    input_thresh: float
    target_offset: float

    def to_dict(self) -> dict:
        return {
            "input_i": self.input_i,
            "input_lra": self.input_lra,
            "input_tp": self.input_tp,
            "input_thresh": self.input_thresh,
            "target_offset": self.target_offset,
        }


@dataclass(frozen=True)
class Job:
    job_id: str
    data: bytes = field(repr=False)
    filename: str
    settings: Settings


@dataclass(frozen=True)
class Result:
    result_id: str
    job_id: str
    filename: str
    source_filename: str
    data: bytes = field(repr=False)
    sha256: str
    settings: Settings
    input_measurement: Measurement
    final_i: Optional[float] = None
    final_tp: Optional[float] = None

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def loudness_label(self) -> str:
        return "unknown" if self.final_i is None else f"{self.final_i:.1f} LUFS"

    @property
    def peak_label(self) -> str:
        return "unknown" if self.final_tp is None else f"{self.final_tp:.1f} dBTP"

    def to_dict(self) -> dict:
        return {
            "id": self.result_id,
            "job": self.job_id,
            "filename": self.filename,
            "source_filename": self.source_filename,
            "loudness": self.final_i,
            "true_peak": self.final_tp,
            "loudness_label": self.loudness_label,
            "true_peak_label": self.peak_label,
            "sample_rate": self.settings.sample_rate_label,
            "bitrate": self.settings.bitrate_label,
            "channels": self.settings.channels_label,
            "sha256": self.sha256,
            "bytes": self.size,
            "input": self.input_measurement.to_dict(),
        }
