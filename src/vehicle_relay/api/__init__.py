"""API routers: vendor webhooks, TwiML bridge and health."""

from vehicle_relay.api import health, webhooks

__all__ = ["health", "webhooks"]
