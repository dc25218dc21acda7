"""Token vault - encrypted storage of OAuth tokens per client connection.

Tokens are encrypted with Fernet (AES-128-CBC with a random IV per call,
authenticated with HMAC-SHA256). The key is derived server-side from
``TOKEN_ENCRYPTION_KEY`` and is never persisted alongside the data.
"""

import base64
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.orm import Session

from config import settings
from models import Client, QBOConnection, utc_now
from services.audit_service import AuditService
from services.exceptions import ConnectionNotFound, CryptoError, IntegrationNotConfigured

logger = logging.getLogger(__name__)


def derive_key(secret: str) -> bytes:
    """Derive a Fernet key from an arbitrary-length secret."""
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


@dataclass
class StoredTokens:
    """Decrypted view of a Connection row."""

    connection_id: str
    client_id: str
    access_token: str
    refresh_token: str
    expires_at: datetime | None
    realm_id: str
    status: str
    environment: str


@dataclass
class TokenValidity:
    needs_refresh: bool
    tokens: StoredTokens


class TokenVault:
    """Encrypts, stores, and decrypts QuickBooks tokens.

    Only this class reads or writes the token columns of
    :class:`~models.qbo_connection.QBOConnection`.
    """

    def __init__(
        self,
        secret: str | None = None,
        refresh_threshold: timedelta | None = None,
    ):
        """Initialize with an optional secret for dependency injection.

        Args:
            secret: Key material. Defaults to ``settings.TOKEN_ENCRYPTION_KEY``.
            refresh_threshold: Remaining lifetime under which a token
                needs refresh. Defaults to the configured threshold.
        """
        self._secret = secret if secret is not None else settings.TOKEN_ENCRYPTION_KEY
        self._refresh_threshold = refresh_threshold or timedelta(
            minutes=settings.TOKEN_REFRESH_THRESHOLD_MINUTES
        )
        self._fernet: Fernet | None = None

    @property
    def fernet(self) -> Fernet:
        if self._fernet is None:
            if not self._secret:
                raise IntegrationNotConfigured("TOKEN_ENCRYPTION_KEY is not configured")
            self._fernet = Fernet(derive_key(self._secret))
        return self._fernet

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a token. Two calls never return the same ciphertext."""
        try:
            return self.fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")
        except IntegrationNotConfigured:
            raise
        except (TypeError, AttributeError, ValueError) as e:
            raise CryptoError(f"Failed to encrypt token: {e}") from e

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a token. A blank (revoked) value decrypts to ``""``.

        Raises:
            CryptoError: Wrong key or corrupt ciphertext.
        """
        if ciphertext == "":
            return ""
        try:
            return self.fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except IntegrationNotConfigured:
            raise
        except (InvalidToken, TypeError, AttributeError, ValueError) as e:
            raise CryptoError("Failed to decrypt token: invalid key or corrupt data") from e

    def store(
        self,
        db: Session,
        client_id: str,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
        realm_id: str,
        environment: str | None = None,
        scope: str | None = None,
        connection_method: str = "oauth",
        audit_event: str = "token_stored",
    ) -> QBOConnection:
        """Encrypt both tokens and upsert the client's Connection as connected."""
        now = utc_now()
        encrypted_access = self.encrypt(access_token)
        encrypted_refresh = self.encrypt(refresh_token)

        conn = db.query(QBOConnection).filter(QBOConnection.client_id == client_id).first()
        if conn is None:
            conn = QBOConnection(client_id=client_id)
            db.add(conn)

        conn.realm_id = realm_id
        conn.access_token = encrypted_access
        conn.refresh_token = encrypted_refresh
        conn.token_expires_at = expires_at
        conn.refresh_token_updated_at = now
        conn.connection_status = "connected"
        conn.connection_method = connection_method
        conn.last_error = None
        if environment:
            conn.environment = environment
        if scope:
            conn.scope = scope
        db.flush()

        AuditService.record(
            db,
            audit_event,
            f"OAuth Event: {audit_event}",
            message=f"Tokens stored for realm {realm_id}",
            client_id=client_id,
        )
        logger.info("Stored tokens for client %s (realm %s)", client_id, realm_id)
        return conn

    def retrieve(self, db: Session, client_id: str) -> StoredTokens:
        """Load and decrypt the client's tokens.

        Raises:
            ConnectionNotFound: No Connection row for this client.
            CryptoError: Stored ciphertext cannot be decrypted.
        """
        conn = db.query(QBOConnection).filter(QBOConnection.client_id == client_id).first()
        if conn is None:
            raise ConnectionNotFound(f"No QuickBooks connection for client {client_id}")
        return self.decrypt_connection(conn)

    def ensure_valid(
        self, db: Session, client_id: str, now: datetime | None = None
    ) -> TokenValidity:
        """Flag whether the access token is inside the refresh threshold.

        Does not refresh; that is the scheduler's job. A missing expiry
        counts as needing refresh.
        """
        tokens = self.retrieve(db, client_id)
        now = now or utc_now()
        if tokens.expires_at is None:
            needs_refresh = True
        else:
            needs_refresh = tokens.expires_at - now < self._refresh_threshold
        return TokenValidity(needs_refresh=needs_refresh, tokens=tokens)

    def revoke(self, db: Session, client_id: str) -> bool:
        """Blank both tokens and mark the connection disconnected.

        Returns ``False`` when there is no connection. Safe to repeat.
        """
        conn = db.query(QBOConnection).filter(QBOConnection.client_id == client_id).first()
        if conn is None:
            return False

        conn.access_token = ""
        conn.refresh_token = ""
        conn.token_expires_at = None
        conn.connection_status = "disconnected"
        client = db.get(Client, client_id)
        if client is not None:
            client.connection_status = "disconnected"
        db.flush()

        AuditService.record(
            db,
            "token_revoked",
            "OAuth Event: token_revoked",
            client_id=client_id,
        )
        logger.info("Revoked tokens for client %s", client_id)
        return True

    def decrypt_connection(self, conn: QBOConnection) -> StoredTokens:
        """Decrypt an already-loaded Connection row."""
        return StoredTokens(
            connection_id=conn.id,
            client_id=conn.client_id,
            access_token=self.decrypt(conn.access_token or ""),
            refresh_token=self.decrypt(conn.refresh_token or ""),
            expires_at=conn.token_expires_at,
            realm_id=conn.realm_id,
            status=conn.connection_status,
            environment=conn.environment,
        )
