"""Decode the loudnorm measurement record out of ffmpeg's stderr.

ffmpeg prints the ``print_format=json`` block on stderr, interleaved with its
ordinary log lines, so the record has to be scraped from the text.  The shape
of that block is treated as a wire contract:

    [Parsed_loudnorm_0 @ 0x55d7c8]
    {
        "input_i" : "-20.03",
        "input_tp" : "-19.99",
        "input_lra" : "0.00",
        "input_thresh" : "-30.03",
        ...
        "target_offset" : "0.03"
    }
"""

import json
import math
import re

from ..errors import MeasurementInvalid, MeasurementNotFound
from ..models.specs import Measurement

FIELDS = ("input_i", "input_lra", "input_tp", "input_thresh", "target_offset")

_BLOCK = re.compile(r"\{.*\}", re.S)
_DECODER = json.JSONDecoder()


def _scan(text: str):
    """Return ``(span, record)`` for the measurement object in ``text``.

    Every ``{`` is tried as the start of a JSON object, so braces in metadata
    tags or other log lines ahead of the block are skipped.  The first object
    carrying a measurement field wins; failing that, the first object at all.
    """
    text = text or ""
    if not _BLOCK.search(text):
        raise MeasurementNotFound("No loudness measurement found in engine output.")
    first = None
    error = None
    start = text.find("{")
    while start != -1:
        try:
            record, end = _DECODER.raw_decode(text, start)
        except json.JSONDecodeError as e:
            error = error or e
        else:
            if any(key in record for key in FIELDS):
                return text[start:end], record
            if first is None:
                first = (text[start:end], record)
        start = text.find("{", start + 1)
    if first is not None:
        return first
    raise MeasurementInvalid(f"Measurement block is not valid JSON: {error}")


def extract_block(text: str) -> str:
    """Return the text of the measurement object found in ``text``."""
    return _scan(text)[0]


def _to_float(record: dict, key: str) -> float:
    if key not in record:
        raise MeasurementInvalid(f"Measurement is missing {key!r}.")
    raw = record[key]
    if isinstance(raw, bool):
        raise MeasurementInvalid(f"Measurement field {key!r} is not numeric: {raw!r}")
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise MeasurementInvalid(f"Measurement field {key!r} is not numeric: {raw!r}")
    if not math.isfinite(value):
        raise MeasurementInvalid(f"Measurement field {key!r} is not finite: {raw!r}")
    return value


def parse_measurement(text: str) -> Measurement:
    _, record = _scan(text)
    return Measurement(**{key: _to_float(record, key) for key in FIELDS})
