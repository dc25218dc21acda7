"""Errors raised by the QuickBooks, Dropbox and n8n clients.

Services branch on the class, never on message text:

- ``InvalidGrantError`` means the connection is dead until the user
  re-authorizes (status ``needs_reconnect``)
- ``retriable`` tells ``execute_with_backoff`` whether another attempt
  could succeed
"""


class ProviderError(Exception):
    """Any failure talking to an external service.

    ``provider_name`` is the human label ("QuickBooks", "Dropbox", "n8n")
    that ends up in run error messages and audit entries.
    """

    retriable = False

    def __init__(self, message: str, provider_name: str = ""):
        self.provider_name = provider_name
        super().__init__(message)


class ProviderAuthError(ProviderError):
    """The provider rejected our credentials (401/403, ``invalid_client``)."""


class InvalidGrantError(ProviderAuthError):
    """Refresh token or authorization code refused with ``invalid_grant``."""


class ProviderConnectionError(ProviderError):
    """No usable response: refused connection, DNS failure, timeout.

    Webhook timeouts pass ``retriable=False`` because n8n may already be
    running the job.
    """

    def __init__(self, message: str, provider_name: str = "", retriable: bool = True):
        super().__init__(message, provider_name)
        self.retriable = retriable


class ProviderAPIError(ProviderError):
    """Non-2xx response that is not an auth failure."""

    def __init__(self, message: str, provider_name: str = "", status_code: int | None = None):
        super().__init__(message, provider_name)
        self.status_code = status_code

    @property
    def retriable(self) -> bool:
        return self.status_code is not None and (self.status_code == 429 or self.status_code >= 500)


class ProviderDataError(ProviderError):
    """2xx response whose body is missing fields we depend on."""
