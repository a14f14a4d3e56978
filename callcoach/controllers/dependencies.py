"""Common FastAPI dependencies reused across controllers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from starlette.requests import HTTPConnection

from callcoach.application.interfaces import Repositories
from callcoach.config.dependencies import AppServices
from callcoach.pipelines.calls import StageRunner
from callcoach.services.notifications import EventPublisher, InMemoryEventBus
from callcoach.services.storage import AudioStorage
from callcoach.utils import AuthenticationError, decode_access_token

# Tokens are issued by the identity service; this URL only feeds the OpenAPI docs.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def resolve_user_id(token: str) -> str:
    """Return the caller id carried in the token ``sub`` claim."""

    try:
        payload = decode_access_token(token)
    except AuthenticationError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from None

    if not payload.sub.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    return payload.sub


async def get_current_user_id(
    token: Annotated[str, Depends(oauth2_scheme)],
) -> str:
    """Resolve the caller referenced by the bearer token."""

    return resolve_user_id(token)


def get_services(connection: HTTPConnection) -> AppServices:
    services = getattr(connection.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting up",
        )
    return services


CurrentUserDep = Annotated[str, Depends(get_current_user_id)]
ServicesDep = Annotated[AppServices, Depends(get_services)]


def get_repositories(services: ServicesDep) -> Repositories:
    return services.repositories


def get_stage_runner(services: ServicesDep) -> StageRunner:
    return services.runner


def get_storage(services: ServicesDep) -> AudioStorage:
    return services.storage


def get_publisher(services: ServicesDep) -> EventPublisher:
    return services.publisher


def get_event_bus(services: ServicesDep) -> InMemoryEventBus:
    return services.event_bus


RepositoriesDep = Annotated[Repositories, Depends(get_repositories)]
StageRunnerDep = Annotated[StageRunner, Depends(get_stage_runner)]
StorageDep = Annotated[AudioStorage, Depends(get_storage)]
PublisherDep = Annotated[EventPublisher, Depends(get_publisher)]
EventBusDep = Annotated[InMemoryEventBus, Depends(get_event_bus)]


__all__ = [
    "CurrentUserDep",
    "EventBusDep",
    "PublisherDep",
    "RepositoriesDep",
    "ServicesDep",
    "StageRunnerDep",
    "StorageDep",
    "get_current_user_id",
    "get_services",
    "oauth2_scheme",
    "resolve_user_id",
]
