from typing import List

from ..models.specs import Measurement, Settings


def _num(value: float) -> str:
    # str() of a float round-trips, so measured values reach ffmpeg unchanged
    return str(float(value))


def build_analysis_filter(settings: Settings) -> str:
    return (
        f"loudnorm=I={_num(settings.target_i)}:TP={_num(settings.target_tp)}:"
        f"LRA={_num(settings.target_lra)}:print_format=json"
    )


def build_render_filter(settings: Settings, m: Measurement) -> str:
    """Corrective loudnorm graph for pass 2.

    The pass-1 measurement goes in as-is; re-measuring here would correct the
    clip twice.
    """
    params = {
        "I": settings.target_i,
        "TP": settings.target_tp,
        "LRA": settings.target_lra,
        "measured_I": m.input_i,
        "measured_LRA": m.input_lra,
        "measured_TP": m.input_tp,
        "measured_thresh": m.input_thresh,
        "offset": m.target_offset,
    }
    return "loudnorm=" + ":".join(f"{k}={_num(v)}" for k, v in params.items()) + ":linear=true"


def build_output_options(settings: Settings) -> List[str]:
    return [
        "-ar", str(settings.sample_rate),
        "-b:a", f"{settings.bitrate}k",
        "-ac", str(settings.channel_count),
    ]
