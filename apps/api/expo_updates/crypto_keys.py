"""
Code signing for manifests and directives.

The Expo Updates code-signing contract:
  • Client sends ``expo-expect-signature`` → server MUST sign or reject (400)
  • Signature = RSA-SHA256 (PKCS#1 v1.5) over the exact JSON body sent
  • Carried as a structured-field dictionary: ``sig="<b64>", keyid="main"``

The private key is read once at startup from PRIVATE_KEY_PATH and held,
read-only, by the Signer for the lifetime of the process.
"""

from __future__ import annotations

import base64
import logging
import os
from pathlib import Path
from typing import Optional

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from http_sfv import Dictionary, Item

from .errors import SigningConfigError

logger = logging.getLogger("expo_updates.signing")

KEY_ID = "main"
SIGNING_NOT_CONFIGURED = "Code signing requested but no key supplied when starting server."


def load_private_key(path: Optional[str | os.PathLike]) -> Optional[rsa.RSAPrivateKey]:
    """Load an RSA private key from a PEM file. Returns None when unset, missing or unusable."""
    if not path:
        logger.info("No PRIVATE_KEY_PATH configured, code signing disabled")
        return None
    key_path = Path(path)
    if not key_path.is_file():
        logger.warning("Private key %s does not exist, code signing disabled", key_path)
        return None
    try:
        with open(key_path.resolve(), "rb") as f:
            pem = f.read()
        key = serialization.load_pem_private_key(pem, password=None)
    except (OSError, ValueError, TypeError) as exc:
        logger.error("Failed to load private key %s: %s", key_path, exc)
        return None
    if not isinstance(key, rsa.RSAPrivateKey):
        logger.error("Key %s is not an RSA private key, code signing disabled", key_path)
        return None
    logger.info("RSA signing key loaded (%d bits)", key.key_size)
    return key


def sign_rsa_sha256(data: str, private_key: rsa.RSAPrivateKey) -> str:
    """Sign UTF-8 ``data`` with RSA-SHA256. Returns base64 signature."""
    sig = private_key.sign(data.encode("utf-8"), padding.PKCS1v15(), hashes.SHA256())
    return base64.b64encode(sig).decode("ascii")


def serialize_dictionary(items: dict[str, str]) -> str:
    """Serialize a flat str→str mapping as a structured-field dictionary."""
    dictionary = Dictionary()
    for key, value in items.items():
        dictionary[key] = Item(value)
    return str(dictionary)


class Signer:
    """Signs serialized payloads with the startup-loaded key, if any."""

    def __init__(self, private_key: Optional[rsa.RSAPrivateKey] = None, key_id: str = KEY_ID):
        self._private_key = private_key
        self.key_id = key_id

    @property
    def configured(self) -> bool:
        return self._private_key is not None

    def maybe_sign(self, payload: str, requested: bool) -> Optional[str]:
        """
        Return the ``expo-signature`` value for ``payload`` or None.

        ``payload`` must be the exact string later written to the response.

        Raises:
            SigningConfigError: signature requested but no key configured
        """
        if not requested:
            return None
        if self._private_key is None:
            raise SigningConfigError(SIGNING_NOT_CONFIGURED)
        sig = sign_rsa_sha256(payload, self._private_key)
        return serialize_dictionary({"sig": sig, "keyid": self.key_id})
