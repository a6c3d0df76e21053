"""Billing API routes."""

from packages.billing.routes import billing, checkout, plans, webhooks

__all__ = ["billing", "checkout", "plans", "webhooks"]
