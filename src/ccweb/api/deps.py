"""Dependency access for route handlers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request
from starlette.requests import HTTPConnection

from ccweb.services.container import ServiceContainer


def set_services(state: object, container: ServiceContainer) -> None:
    """Store the service container in app state."""
    state.services = container  # type: ignore[attr-defined]


def get_services(connection: HTTPConnection) -> ServiceContainer:
    """Retrieve the service container from app state."""
    container = getattr(connection.app.state, "services", None)
    if container is None:
        msg = "ServiceContainer not initialized"
        raise RuntimeError(msg)
    return container  # type: ignore[no-any-return]


def _request_services(request: Request) -> ServiceContainer:
    return get_services(request)


Services = Annotated[ServiceContainer, Depends(_request_services)]
