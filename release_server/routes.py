from __future__ import annotations

import io
import logging
from typing import Any

from flask import Blueprint, Response, jsonify, request, send_file

from release_server import __version__
from release_server.audit_logging import audit_event, get_audit_log, init_audit_logging
from release_server.auth import require_api_key
from release_server.context import get_context
from release_server.crypto import generate_api_key, hash_api_key, load_public_key
from release_server.downloads import DOWNLOAD_CACHE_CONTROL, aggregate_stats
from release_server.errors import ValidationError
from release_server.metadata import load_index, update_server_meta
from release_server.models import ServerMeta, utc_now_iso
from release_server.publisher import UploadedFile
from release_server.resolver import LATEST_CACHE_CONTROL, resolve_latest

logger = logging.getLogger(__name__)

MAX_AUDIT_PAGE = 1000

# Route groups; each carries its own rate limit (see rate_lim.init_rate_limiter)
status = Blueprint("status", __name__)
latest = Blueprint("latest", __name__)
downloads = Blueprint("downloads", __name__)
api = Blueprint("api", __name__, url_prefix="/api")

init_audit_logging(api)
api.before_request(require_api_key)


def _safe_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


# -------------------- Public --------------------


@status.route("/health", methods=["GET"])
def health() -> tuple[Response, int]:
    return jsonify({"status": "ok", "version": __version__, "timestamp": utc_now_iso()}), 200


@latest.route("/latest.json", methods=["GET"])
def latest_manifest() -> Response:
    ctx = get_context()
    manifest = resolve_latest(load_index(ctx.storage), ctx.settings.base_url)
    resp = jsonify(manifest)
    resp.headers["Cache-Control"] = LATEST_CACHE_CONTROL
    return resp


@downloads.route("/releases/<string:version>/<string:filename>", methods=["GET"])
def download_artifact(version: str, filename: str) -> Response:
    # HEAD returns headers only and is not counted as a download
    download = get_context().tracker.open(version, filename, record=request.method != "HEAD")
    resp = send_file(
        io.BytesIO(download.data),
        mimetype=download.content_type,
        as_attachment=True,
        download_name=download.filename,
    )
    resp.headers["Content-Length"] = str(download.size)
    resp.headers["Cache-Control"] = DOWNLOAD_CACHE_CONTROL
    return resp


# -------------------- Releases (authenticated) --------------------


@api.route("/releases", methods=["GET"])
def list_releases() -> Response:
    releases = get_context().publisher.list_releases()
    return jsonify({"releases": [release.to_dict() for release in releases]})


@api.route("/releases", methods=["POST"])
def publish_release() -> tuple[Response, int]:
    files = [
        UploadedFile(filename=upload.filename or "", data=upload.stream)
        for field, upload in request.files.items(multi=True)
        if field.startswith("file_")
    ]
    result = get_context().publisher.publish(
        version=request.form.get("version", ""),
        notes=request.form.get("notes", ""),
        signature=request.form.get("signature", ""),
        files=files,
    )
    audit_event(
        "release_published",
        version=result.release.version,
        platforms=result.platforms,
        verified=result.verified,
    )
    return jsonify(result.to_dict()), 201


@api.route("/releases/<string:version>", methods=["DELETE"])
def deprecate_release(version: str) -> Response:
    get_context().publisher.deprecate(version)
    audit_event("release_deprecated", version=version)
    return jsonify(
        {
            "status": "deprecated",
            "version": version,
            "message": "Release hidden from latest.json. Files preserved for existing users.",
        }
    )


# -------------------- Admin --------------------


@api.route("/audit", methods=["GET"])
def audit_log() -> Response:
    limit = min(MAX_AUDIT_PAGE, max(1, _safe_int(request.args.get("limit"), 50)))
    offset = max(0, _safe_int(request.args.get("offset"), 0))
    entries, total = get_audit_log(get_context().storage, limit, offset)
    return jsonify({"entries": entries, "total": total, "limit": limit, "offset": offset})


@api.route("/stats", methods=["GET"])
def download_stats() -> Response:
    return jsonify(aggregate_stats(get_context().storage))


@api.route("/keys/rotate", methods=["POST"])
def rotate_key() -> Response:
    new_key = generate_api_key()
    new_hash = hash_api_key(new_key)

    def _set_hash(meta: ServerMeta) -> None:
        meta.api_key_hash = new_hash

    update_server_meta(get_context().storage, _set_hash)
    logger.warning("API key rotated; previous key revoked")
    return jsonify(
        {
            "message": "API key rotated. The previous key is no longer accepted.",
            "newKey": new_key,
            "newKeyHash": new_hash,
        }
    )


@api.route("/settings/public-key", methods=["PUT"])
def update_public_key() -> Response:
    body = request.get_json(silent=True) or {}
    public_key = str(body.get("publicKey") or "").strip() if isinstance(body, dict) else ""
    if not public_key:
        raise ValidationError("Missing publicKey")
    try:
        load_public_key(public_key)
    except ValueError as exc:
        raise ValidationError(f"Invalid publicKey: {exc}") from exc

    def _set_key(meta: ServerMeta) -> None:
        meta.public_key = public_key

    update_server_meta(get_context().storage, _set_key)
    logger.info("Registered Ed25519 public key updated")
    return jsonify({"message": "Public key updated", "publicKey": public_key})
