"""Error taxonomy shared by the publish, resolve and download paths.

Each error carries the HTTP status it maps to; the Flask layer renders them
as ``{"error": message}``.
"""
from __future__ import annotations

from http import HTTPStatus


class ReleaseServerError(Exception):
    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ReleaseServerError):
    """Malformed input: filename, size, magic bytes, semver, missing fields."""

    status_code = HTTPStatus.BAD_REQUEST


class ConflictError(ReleaseServerError):
    """Version already exists or is not newer than an active release."""

    status_code = HTTPStatus.BAD_REQUEST


class UnauthorizedError(ReleaseServerError):
    status_code = HTTPStatus.UNAUTHORIZED


class SignatureError(ReleaseServerError):
    status_code = HTTPStatus.FORBIDDEN


class NotFoundError(ReleaseServerError):
    status_code = HTTPStatus.NOT_FOUND


class GoneError(ReleaseServerError):
    status_code = HTTPStatus.GONE


class ConfigurationError(ReleaseServerError):
    status_code = HTTPStatus.INTERNAL_SERVER_ERROR
