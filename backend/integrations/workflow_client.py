"""n8n workflow engine webhook client.

The engine acknowledges a dispatch synchronously and reports the job
result later through the review callback endpoint.
"""

import logging

import httpx

from integrations.exceptions import ProviderAPIError, ProviderConnectionError

logger = logging.getLogger(__name__)

PROVIDER_NAME = "n8n"


class WorkflowClient:
    """Posts job requests to the workflow engine's webhook."""

    def __init__(self, webhook_url: str, timeout: float = 140.0):
        self._webhook_url = webhook_url
        self._client = httpx.Client(timeout=timeout)

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def provider_name(self) -> str:
        return PROVIDER_NAME

    def is_configured(self) -> bool:
        return bool(self._webhook_url)

    def dispatch(self, payload: dict) -> dict:
        """POST a job request and return the engine's acknowledgement.

        Raises:
            ProviderConnectionError: Timeout (``retriable=False``, the job
                may already be running) or connection failure (retriable).
            ProviderAPIError: Non-2xx acknowledgement.
        """
        try:
            response = self._client.request("POST", self._webhook_url, json=payload)
        except httpx.TimeoutException as exc:
            raise ProviderConnectionError(
                "Workflow engine did not acknowledge before the timeout",
                provider_name=PROVIDER_NAME,
                retriable=False,
            ) from exc
        except httpx.RequestError as exc:
            raise ProviderConnectionError(
                f"Workflow engine unreachable: {exc}",
                provider_name=PROVIDER_NAME,
            ) from exc

        if response.status_code >= 400:
            raise ProviderAPIError(
                f"Workflow engine returned HTTP {response.status_code}: {response.text[:500]}",
                provider_name=PROVIDER_NAME,
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            body = {"raw": response.text}
        if not isinstance(body, dict):
            body = {"data": body}
        logger.debug("Workflow engine acknowledged dispatch: HTTP %d", response.status_code)
        return body
