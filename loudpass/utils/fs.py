import hashlib
import os
import re
import tempfile
from pathlib import Path

from ..models.specs import OUTPUT_EXT

BASE_DIR = Path(__file__).resolve().parent.parent.parent

ALLOWED = {".wav", ".wave", ".flac", ".aif", ".aiff", ".mp3", ".ogg", ".opus", ".m4a", ".aac", ".webm"}

_NON_ASCII = re.compile(r"[^\x00-\x7f]")
_LAST_EXT = re.compile(r"\.[^.]+$")


def resolve_work_dir(value) -> Path:
    """Return an absolute, existing scratch root for ``value``.

    Relative paths are taken against the project root.  When the location is
    not writable (read-only containers) fall back to the system temp dir.
    """
    work = Path(value)
    if not work.is_absolute():
        work = BASE_DIR / work
    try:
        work.mkdir(parents=True, exist_ok=True)
    except PermissionError:
        work = Path(tempfile.gettempdir()) / "loudpass"
        work.mkdir(parents=True, exist_ok=True)
    return work


def _basename(filename: str) -> str:
    # browsers on Windows may send the full client path
    return os.path.basename(filename.replace("\\", "/"))


def allowed_file(filename: str) -> bool:
    m = _LAST_EXT.search(_basename(filename))
    return m is not None and m.group(0).lower() in ALLOWED


def source_stem(filename: str) -> str:
    return _LAST_EXT.sub("", _basename(filename))


def output_filename(filename: str, prefix: str = "", suffix: str = "") -> str:
    head = f"{prefix}_" if prefix else ""
    tail = f"_{suffix}" if suffix else ""
    return f"{head}{source_stem(filename)}{tail}{OUTPUT_EXT}"


def truncate_middle(name: str, max_length: int = 30) -> str:
    """Shorten ``name`` for display, keeping both ends around an ellipsis.

    Names with non-ASCII characters render wider, so they get an 18 character
    budget instead of ``max_length``.
    """
    if not name:
        return ""
    limit = 18 if _NON_ASCII.search(name) else max_length
    if len(name) <= limit:
        return name
    half = (limit - 3) // 2
    return name[:half] + "..." + name[-half:]


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()
