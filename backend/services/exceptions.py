"""Domain exceptions raised by the service layer.

Routers translate these into HTTP responses; provider failures use the
separate hierarchy in :mod:`integrations.exceptions`.
"""


class CryptoError(Exception):
    """Token encryption or decryption failed (bad key or corrupt data)."""

    pass


class IntegrationNotConfigured(Exception):
    """A required setting or firm credential is missing."""

    pass


class NotFoundError(Exception):
    """A referenced record does not exist."""

    pass


class ClientNotFound(NotFoundError):
    pass


class ConnectionNotFound(NotFoundError):
    pass


class RunNotFound(NotFoundError):
    pass


class InvalidOAuthState(Exception):
    """OAuth state is unknown, already consumed, or expired."""

    pass


class AlreadyInProgress(Exception):
    """A run for this client is already processing inside the dedup window."""

    def __init__(self, client_id: str, run_id: str):
        self.client_id = client_id
        self.run_id = run_id
        super().__init__(
            f"A review for client {client_id} is already in progress (run {run_id})"
        )


class IllegalRunTransition(Exception):
    """A run status change that the state machine does not allow."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Illegal run transition: {current} -> {target}")


class CallbackAuthError(Exception):
    """An engine callback carried a missing or wrong shared secret."""

    pass
