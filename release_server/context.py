from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from release_server.background import BackgroundWriter
from release_server.config import Settings
from release_server.downloads import DownloadTracker
from release_server.metadata import load_server_meta
from release_server.publisher import ReleasePublisher
from release_server.storage import StorageBackend

EXTENSION_KEY = "release_server"


@dataclass
class ServerContext:
    """Process-scoped state built once by ``create_app`` and shared by handlers."""

    settings: Settings
    storage: StorageBackend
    background: BackgroundWriter
    publisher: ReleasePublisher = field(init=False)
    tracker: DownloadTracker = field(init=False)

    def __post_init__(self) -> None:
        self.publisher = ReleasePublisher(self.storage, self.settings.base_url, self.registered_public_key)
        self.tracker = DownloadTracker(self.storage, self.background)

    def registered_public_key(self) -> str:
        """Key set through the settings endpoint, falling back to ED25519_PUBLIC_KEY."""
        meta = load_server_meta(self.storage)
        if meta and meta.public_key:
            return meta.public_key
        return self.settings.ed25519_public_key or ""


def get_context() -> ServerContext:
    return current_app.extensions[EXTENSION_KEY]
