"""Invoicing and receivables core for a small-business CRM."""

__version__ = "1.0.0"
