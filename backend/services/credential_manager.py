"""OS keychain storage for the app's integration secrets.

Everything lives under one keyring service name. Only names in
:data:`CREDENTIAL_KEYS` can be written or removed; a typo in a setup
script should fail loudly rather than leave an orphan entry behind.
"""

import logging

import keyring
from keyring.errors import KeyringError

logger = logging.getLogger(__name__)

SERVICE_NAME = "qb-review"

CREDENTIAL_KEYS: frozenset[str] = frozenset(
    {
        "TOKEN_ENCRYPTION_KEY",
        "INTUIT_CLIENT_ID",
        "INTUIT_CLIENT_SECRET",
        "DROPBOX_APP_KEY",
        "DROPBOX_APP_SECRET",
        "N8N_WEBHOOK_URL",
        "N8N_CALLBACK_SECRET",
        "INTERNAL_API_SECRET",
    }
)

# Replacing one of these orphans data encrypted under the old value.
ROTATION_SENSITIVE_KEYS: frozenset[str] = frozenset({"TOKEN_ENCRYPTION_KEY"})


class UnknownCredentialError(ValueError):
    pass


def _require_known(key: str) -> None:
    if key not in CREDENTIAL_KEYS:
        raise UnknownCredentialError(f"{key} is not a managed credential")


def get_credential(key: str) -> str | None:
    """Read ``key`` from the keychain; None when unset or no backend."""
    try:
        return keyring.get_password(SERVICE_NAME, key)
    except KeyringError:
        logger.debug("Keychain lookup failed for %s", key, exc_info=True)
        return None


def set_credential(key: str, value: str) -> bool:
    """Write ``key`` to the keychain.

    Returns False if the value is blank or the backend refuses the write.

    Raises:
        UnknownCredentialError: ``key`` is not in :data:`CREDENTIAL_KEYS`.
    """
    _require_known(key)
    if not value or not value.strip():
        logger.warning("Refusing to store blank value for %s", key)
        return False
    try:
        keyring.set_password(SERVICE_NAME, key, value)
    except KeyringError:
        logger.warning("Keychain rejected %s", key, exc_info=True)
        return False
    logger.info("Stored %s in keychain", key)
    return True


def delete_credential(key: str) -> bool:
    """Remove ``key``; False when it was not stored."""
    _require_known(key)
    try:
        keyring.delete_password(SERVICE_NAME, key)
    except KeyringError:
        return False
    logger.info("Removed %s from keychain", key)
    return True


def credential_status() -> dict[str, bool]:
    """Map every managed key to whether the keychain holds a value for it."""
    return {key: get_credential(key) is not None for key in sorted(CREDENTIAL_KEYS)}
