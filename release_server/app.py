import logging

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from release_server.background import BackgroundWriter
from release_server.config import Settings
from release_server.context import EXTENSION_KEY, ServerContext
from release_server.errors import ReleaseServerError
from release_server.rate_lim import init_rate_limiter
from release_server.routes import api, downloads, latest, status
from release_server.storage import create_storage
from release_server.validation import MAX_FILE_SIZE, MAX_FILES_PER_RELEASE, init_validation

logger = logging.getLogger(__name__)


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ReleaseServerError)
    def _release_error(exc: ReleaseServerError):
        if exc.status_code >= 500:
            app.logger.error("%s: %s", type(exc).__name__, exc.message)
        return jsonify({"error": exc.message}), exc.status_code

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        return jsonify({"error": exc.description}), exc.code


def create_app(config=None):
    """Build the Flask app.

    ``config`` is either a ``Settings`` instance or a dict of Flask config
    overrides. A dict may also carry ``SETTINGS`` (a ``Settings``),
    ``STORAGE`` (a prebuilt storage backend) and ``BACKGROUND_SYNC`` (run
    bookkeeping writes inline).
    """
    if isinstance(config, Settings):
        config = {"SETTINGS": config}
    config = dict(config or {})
    settings = config.pop("SETTINGS", None) or Settings()
    storage = config.pop("STORAGE", None) or create_storage(settings)
    background = BackgroundWriter(synchronous=bool(config.pop("BACKGROUND_SYNC", False)))

    app = Flask(__name__)
    # every platform at the per-file ceiling, plus room for form fields
    app.config["MAX_CONTENT_LENGTH"] = MAX_FILES_PER_RELEASE * MAX_FILE_SIZE + 1024 * 1024
    app.config.update(config)
    ctx = ServerContext(settings=settings, storage=storage, background=background)
    app.extensions[EXTENSION_KEY] = ctx

    init_validation(app)
    init_rate_limiter(app, settings, latest=latest, downloads=downloads, api=api)
    _register_error_handlers(app)
    for blueprint in (status, latest, downloads, api):
        app.register_blueprint(blueprint)

    if not app.logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s"))
        app.logger.addHandler(handler)
    app.logger.setLevel(settings.log_level.upper())
    logging.getLogger("release_server").setLevel(settings.log_level.upper())

    if not ctx.registered_public_key():
        app.logger.warning("No Ed25519 public key registered: uploads are accepted without signature verification")
    return app


if __name__ == "__main__":
    runtime_settings = Settings()
    application = create_app(runtime_settings)
    application.logger.info("Release server listening on port %d", runtime_settings.port)
    application.run(host="0.0.0.0", port=runtime_settings.port)
