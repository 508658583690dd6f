import os

WORK_DIR = os.getenv("WORK_DIR", "/tmp/loudpass")
FFMPEG_BIN = os.getenv("FFMPEG_BIN", "ffmpeg")
FFPROBE_BIN = os.getenv("FFPROBE_BIN", "ffprobe")
PASS_TIMEOUT_SEC = float(os.getenv("PASS_TIMEOUT_SEC")) if os.getenv("PASS_TIMEOUT_SEC") else None
MAX_FILE_MB = int(os.getenv("MAX_FILE_MB", "200"))
MAX_CLIP_SECONDS = float(os.getenv("MAX_CLIP_SECONDS", "300"))
ENGINE_WARMUP = os.getenv("ENGINE_WARMUP", "true").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
