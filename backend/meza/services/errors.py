# backend/meza/services/errors.py
"""
Service-layer exceptions.

Everything is a ValueError so existing `except ValueError` handlers in the
routers keep working; the subclasses only pick the HTTP status.
"""


class ServiceError(ValueError):
    status_code = 400


class NotFoundError(ServiceError):
    status_code = 404


class StateError(ServiceError):
    """Operation not allowed in the entity's current status."""
    status_code = 409
