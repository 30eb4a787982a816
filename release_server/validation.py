"""Upload validation for release artifacts, plus lightweight request guards.

Each check returns a ``ValidationResult`` with a human-readable error; the
publisher stops at the first failure. ``init_validation`` adds conservative
request-level limits (payload size, query/path parameter length) to the app.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from http import HTTPStatus

from flask import jsonify, request

from release_server.metadata import load_index, manifest_key
from release_server.storage import StorageBackend

MAX_FILE_SIZE = 50 * 1024 * 1024
MAX_FILES_PER_RELEASE = 6  # 3 platforms x 2 arches
GZIP_MAGIC = b"\x1f\x8b"

_FILENAME_RE = re.compile(r"^[\w-]+-(?:darwin|linux)-(?:arm64|x64)\.tar\.gz$")
_PLATFORM_RE = re.compile(r"(darwin|linux)-(arm64|x64)\.tar\.gz$")
_SEMVER_RE = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)

# version check outcomes
INVALID = "invalid"
EXISTS = "exists"
NOT_NEWER = "not_newer"


@dataclass
class ValidationResult:
    valid: bool
    error: str | None = None
    code: str | None = None

    @classmethod
    def ok(cls) -> ValidationResult:
        return cls(True)

    @classmethod
    def fail(cls, error: str, code: str = INVALID) -> ValidationResult:
        return cls(False, error, code)


def validate_filename(filename: str) -> ValidationResult:
    if not _FILENAME_RE.match(filename or ""):
        return ValidationResult.fail(
            f'Invalid filename pattern: "{filename}". Expected: {{name}}-{{darwin|linux}}-{{arm64|x64}}.tar.gz'
        )
    return ValidationResult.ok()


def validate_file_size(size: int) -> ValidationResult:
    if size > MAX_FILE_SIZE:
        return ValidationResult.fail(f"File too large: {size / 1024 / 1024:.1f}MB. Maximum: 50MB")
    return ValidationResult.ok()


def validate_gzip(header: bytes) -> ValidationResult:
    if header[:2] != GZIP_MAGIC:
        return ValidationResult.fail("Not a valid gzip file (magic bytes mismatch)")
    return ValidationResult.ok()


def validate_semver(version: str) -> ValidationResult:
    if not _SEMVER_RE.match(version or ""):
        return ValidationResult.fail(f'Invalid semver version: "{version}"')
    return ValidationResult.ok()


def semver_key(version: str) -> tuple[int, int, int]:
    """(major, minor, patch); pre-release and build suffixes do not take part."""
    match = _SEMVER_RE.match(version)
    if match:
        return int(match.group(1)), int(match.group(2)), int(match.group(3))
    core = re.split(r"[-+]", version, maxsplit=1)[0]
    parts = (core.split(".") + ["0", "0", "0"])[:3]
    return tuple(int(p) if p.isdigit() else 0 for p in parts)  # type: ignore[return-value]


def compare_semver(a: str, b: str) -> int:
    ka, kb = semver_key(a), semver_key(b)
    return (ka > kb) - (ka < kb)


def validate_version(version: str, storage: StorageBackend) -> ValidationResult:
    semver_result = validate_semver(version)
    if not semver_result.valid:
        return semver_result

    if storage.exists(manifest_key(version)):
        return ValidationResult.fail(f"Version {version} already exists. Releases are immutable.", EXISTS)

    index = load_index(storage) or {}
    if version in index:
        return ValidationResult.fail(f"Version {version} already exists. Releases are immutable.", EXISTS)
    for existing in index.values():
        if existing.is_active and compare_semver(version, existing.version) <= 0:
            return ValidationResult.fail(
                f"Version {version} must be newer than existing version {existing.version}", NOT_NEWER
            )
    return ValidationResult.ok()


def validate_file_count(count: int) -> ValidationResult:
    if count > MAX_FILES_PER_RELEASE:
        return ValidationResult.fail(f"Too many files: {count}. Maximum: {MAX_FILES_PER_RELEASE}")
    return ValidationResult.ok()


def platform_from_filename(filename: str) -> str | None:
    """``myapp-darwin-arm64.tar.gz`` -> ``darwin-arm64``."""
    match = _PLATFORM_RE.search(filename)
    if not match:
        return None
    return f"{match.group(1)}-{match.group(2)}"


# ---------------------------------------------------------------------------
# Request guards
# ---------------------------------------------------------------------------


def init_validation(app) -> None:
    max_qlen = int(app.config.get("MAX_QUERY_PARAM_LENGTH", 512))
    max_path_len = int(app.config.get("MAX_PATH_PARAM_LENGTH", 256))

    @app.before_request
    def _validate_request():
        # Werkzeug also enforces MAX_CONTENT_LENGTH, but only once the body is read
        cl = request.content_length
        limit = app.config.get("MAX_CONTENT_LENGTH")
        if cl is not None and limit is not None and cl > limit:
            resp = jsonify({"error": "Request payload too large"})
            resp.status_code = HTTPStatus.REQUEST_ENTITY_TOO_LARGE
            return resp

        for k, v in request.args.items():
            if v is not None and len(v) > max_qlen:
                resp = jsonify({"error": f"Query parameter '{k}' is too long"})
                resp.status_code = HTTPStatus.BAD_REQUEST
                return resp

        for k, v in (request.view_args or {}).items():
            if isinstance(v, str) and len(v) > max_path_len:
                resp = jsonify({"error": f"Path parameter '{k}' is too long"})
                resp.status_code = HTTPStatus.BAD_REQUEST
                return resp
        return None
