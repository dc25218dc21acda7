"""External API integrations.

This package contains:
- OAuth protocol: provider-neutral token types
- QuickBooks client: Intuit OAuth2 and the QBO accounting API
- Dropbox client: Dropbox OAuth2 with PKCE
- Workflow client: n8n webhook dispatch
"""

from integrations.dropbox_client import DropboxClient
from integrations.oauth_protocol import TokenSet
from integrations.quickbooks_client import QuickBooksClient
from integrations.workflow_client import WorkflowClient

__all__ = [
    "DropboxClient",
    "QuickBooksClient",
    "TokenSet",
    "WorkflowClient",
]
