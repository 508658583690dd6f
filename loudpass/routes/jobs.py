import io
import shutil

from flask import Blueprint, current_app, jsonify, request, send_file, url_for
from werkzeug.exceptions import RequestEntityTooLarge

from ..errors import SettingsError, UnsupportedAudio
from ..models.specs import BITRATES, CHANNEL_LAYOUTS, OUTPUT_MIMETYPE, SAMPLE_RATES, Settings
from ..services.probe import probe_upload, validate_clip
from ..utils.fs import ALLOWED, allowed_file, truncate_middle

bp = Blueprint("jobs", __name__)


def _runner():
    return current_app.extensions["loudpass"]


@bp.get("/healthz")
def healthz():
    session = _runner().session
    return jsonify({
        "status": "ok",
        "ffmpeg": shutil.which(session.binary) is not None,
        "engine": session.version,
    })


@bp.get("/options")
def options():
    defaults = Settings()
    return jsonify({
        "sample_rates": list(SAMPLE_RATES),
        "bitrates": list(BITRATES),
        "channels": [{"value": k, "label": v[0]} for k, v in CHANNEL_LAYOUTS.items()],
        "extensions": sorted(ALLOWED),
        "defaults": {
            "loudness": defaults.target_i,
            "peak": defaults.target_tp,
            "lra": defaults.target_lra,
            "sample_rate": defaults.sample_rate,
            "bitrate": defaults.bitrate,
            "channels": defaults.channels,
        },
    })


@bp.post("/jobs")
def submit():
    f = request.files.get("audio")
    if not f or not f.filename:
        return jsonify({"ok": False, "error": "No audio file provided (form field must be 'audio')."}), 400
    if not allowed_file(f.filename):
        return jsonify({"ok": False, "error": f"Unsupported file type: {f.filename}"}), 415
    try:
        settings = Settings.from_form(request.form)
    except SettingsError as e:
        return jsonify({"ok": False, "error": str(e)}), 400

    data = f.read()
    try:
        cfg = current_app.config
        info = probe_upload(data, ffprobe=cfg["FFPROBE_BIN"], tmp_dir=cfg["WORK_DIR"])
        validate_clip(info, cfg["MAX_CLIP_SECONDS"])
    except UnsupportedAudio as e:
        return jsonify({"ok": False, "error": str(e)}), 415

    handle = _runner().submit(data, f.filename, settings)
    status_url = url_for("jobs.status", job_id=handle.job_id)
    return jsonify({"ok": True, "job": handle.job_id, "status_url": status_url}), 202


@bp.get("/jobs/<job_id>")
def status(job_id):
    handle = _runner().get(job_id)
    if handle is None:
        return jsonify({"ok": False, "error": "Unknown job"}), 404
    resp = jsonify(handle.to_dict())
    resp.headers["Cache-Control"] = "no-store, max-age=0"
    return resp


@bp.get("/results")
def results():
    rows = []
    for r in _runner().store:
        row = r.to_dict()
        row["display_name"] = truncate_middle(r.filename)
        row["download_url"] = url_for("jobs.download", result_id=r.result_id)
        rows.append(row)
    return jsonify({"results": rows})


@bp.get("/download/<result_id>")
def download(result_id):
    r = _runner().store.get(result_id)
    if r is None:
        return jsonify({"ok": False, "error": "Unknown result"}), 404
    return send_file(io.BytesIO(r.data), mimetype=OUTPUT_MIMETYPE, as_attachment=True, download_name=r.filename)


@bp.app_errorhandler(RequestEntityTooLarge)
def too_large(e):
    limit_mb = (current_app.config.get("MAX_CONTENT_LENGTH") or 0) // (1024 * 1024)
    return jsonify({"ok": False, "error": f"Upload exceeds {limit_mb} MB."}), 413
