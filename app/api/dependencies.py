"""
FastAPI Dependencies - service lookup for route handlers.

NO DICTIONARIES - All dependencies return typed objects.
"""

from fastapi import Request

from app.container import ServiceContainer
from app.services.webhooks import StripeWebhookHandler


def get_container(request: Request) -> ServiceContainer:
    """The ServiceContainer built by the application lifespan."""
    container: ServiceContainer = request.app.state.container
    return container


def get_webhook_handler(request: Request) -> StripeWebhookHandler:
    return get_container(request).webhooks
