"""
Expo Updates error taxonomy.

Every failure the update pipeline can surface to a client derives from
UpdatesError and carries the HTTP status it maps to. The FastAPI
exception handler in main.py turns them into ``{"error": message}``.

Storage backends do NOT raise these: they raise FileNotFoundError / OSError
and the core wraps them with runtime version and bundle path context.
"""
from __future__ import annotations


class UpdatesError(Exception):
    """Base class for client-visible update server errors."""

    status_code = 404

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidRequestError(UpdatesError):
    """Request headers or query parameters failed validation."""

    status_code = 400


class RuntimeVersionNotFoundError(UpdatesError):
    """No update bundle exists for the requested runtime version."""


class MetadataMissingError(UpdatesError):
    """metadata.json of a bundle could not be fetched or parsed."""


class ConfigMissingError(UpdatesError):
    """expoConfig.json of a bundle could not be fetched or parsed."""


class RollbackMissingError(UpdatesError):
    """The rollback marker vanished between classification and directive build."""


class BundleUnreadableError(UpdatesError):
    """The storage backend failed while inspecting a bundle directory."""


class AssetNotFoundError(UpdatesError):
    """An asset referenced by metadata or by an asset URL does not exist."""


class UnsupportedProtocolError(UpdatesError):
    """
    Directive type not representable in the negotiated protocol version.

    Raised when:
    - a rollback is published but the client speaks protocol 0
    - the client is current but protocol 0 has no noUpdateAvailable directive
    """


class MissingHeaderError(UpdatesError):
    """A header required by the rollback branch is absent."""


class SigningConfigError(UpdatesError):
    """Client asked for a signed response but the server holds no private key."""

    status_code = 400
