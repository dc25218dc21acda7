"""API route handlers."""
from . import clients, dropbox, firm_settings, maintenance, quickbooks, reviews

__all__ = ["clients", "dropbox", "firm_settings", "maintenance", "quickbooks", "reviews"]
