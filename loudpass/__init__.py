from flask import Flask

from . import settings
from .jobs import JobRunner
from .pipeline import NormalizationController
from .services.ffmpeg import EngineSession
from .store import ResultStore
from .utils.fs import resolve_work_dir
from .utils.logging import setup_logging


def create_app(test_config=None, engine=None):
    """Create and configure the Flask application.

    Configuration comes from :mod:`loudpass.settings` (environment driven) and
    may be overridden with ``test_config``.  ``engine`` replaces the default
    ffmpeg :class:`EngineSession`, which is how tests run without ffmpeg.

    The app owns one engine session, one single-worker job runner and one
    result store; results live as long as the process.
    """
    app = Flask(__name__)
    app.config.from_mapping(
        WORK_DIR=settings.WORK_DIR,
        FFMPEG_BIN=settings.FFMPEG_BIN,
        FFPROBE_BIN=settings.FFPROBE_BIN,
        PASS_TIMEOUT_SEC=settings.PASS_TIMEOUT_SEC,
        MAX_CLIP_SECONDS=settings.MAX_CLIP_SECONDS,
        MAX_CONTENT_LENGTH=settings.MAX_FILE_MB * 1024 * 1024,
        ENGINE_WARMUP=settings.ENGINE_WARMUP,
        LOG_LEVEL=settings.LOG_LEVEL,
    )
    if test_config:
        app.config.update(test_config)

    setup_logging(app.config["LOG_LEVEL"])
    work_dir = resolve_work_dir(app.config["WORK_DIR"])
    app.config["WORK_DIR"] = str(work_dir)

    if engine is None:
        engine = EngineSession(work_dir, binary=app.config["FFMPEG_BIN"], timeout=app.config["PASS_TIMEOUT_SEC"])
    runner = JobRunner(NormalizationController(engine, ResultStore()))
    app.extensions["loudpass"] = runner

    from .routes.jobs import bp as jobs_bp
    app.register_blueprint(jobs_bp)

    if app.config["ENGINE_WARMUP"]:
        runner.warm_up()

    return app


__all__ = ["create_app"]
