"""Process-wide wiring of repositories, providers, storage and the stage runner."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from callcoach.application.interfaces import Repositories
from callcoach.database import create_engine, create_session_factory, dispose_engine, init_models
from callcoach.infrastructure.external.mq_adapter import RabbitMqPublisher
from callcoach.infrastructure.persistence.memory import create_memory_repositories
from callcoach.infrastructure.persistence.repositories_sqlalchemy import (
    create_sqlalchemy_repositories,
)
from callcoach.pipelines.calls import StageContext, StageRunner
from callcoach.services.notifications import EventPublisher, FanOutPublisher, InMemoryEventBus
from callcoach.services.providers import ProviderGateway, select_gateway
from callcoach.services.storage import AudioStorage

from .settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppServices:
    """Everything the controllers reach through ``app.state.services``."""

    repositories: Repositories
    gateway: ProviderGateway
    storage: AudioStorage
    event_bus: InMemoryEventBus
    publisher: EventPublisher
    runner: StageRunner
    engine: Optional[AsyncEngine] = None


def assemble_services(
    *,
    repositories: Repositories,
    gateway: ProviderGateway,
    storage: AudioStorage,
    event_bus: InMemoryEventBus,
    publisher: Optional[EventPublisher] = None,
    engine: Optional[AsyncEngine] = None,
) -> AppServices:
    """Build the stage runner around already constructed collaborators."""

    publisher = publisher or event_bus
    runner = StageRunner(
        StageContext(
            gateway=gateway,
            repositories=repositories,
            publisher=publisher,
            storage=storage,
        )
    )
    return AppServices(
        repositories=repositories,
        gateway=gateway,
        storage=storage,
        event_bus=event_bus,
        publisher=publisher,
        runner=runner,
        engine=engine,
    )


async def build_services(config: Settings) -> AppServices:
    """Create the services described by ``config`` and prepare the database."""

    engine: Optional[AsyncEngine] = None
    if config.database.in_memory:
        logger.warning("Using in-memory repositories; data is lost on restart")
        repositories = create_memory_repositories()
    else:
        engine = create_engine(config.database, debug=config.debug)
        await init_models(engine)
        repositories = create_sqlalchemy_repositories(create_session_factory(engine))

    event_bus = InMemoryEventBus(
        history_size=config.notifications.history_size,
        max_topics=config.notifications.history_topics,
    )
    publisher: EventPublisher = event_bus
    if config.notifications.backend == "rabbitmq":
        logger.info(
            "Publishing pipeline events to RabbitMQ exchange %s",
            config.notifications.exchange,
        )
        publisher = FanOutPublisher([event_bus, RabbitMqPublisher(config.notifications)])

    return assemble_services(
        repositories=repositories,
        gateway=select_gateway(config),
        storage=AudioStorage(config.storage),
        event_bus=event_bus,
        publisher=publisher,
        engine=engine,
    )


async def close_services(services: AppServices) -> None:
    """Let running stages finish, then release provider, broker and database resources."""

    await services.runner.aclose()
    await services.gateway.aclose()
    await services.publisher.aclose()
    if services.engine is not None:
        await dispose_engine(services.engine)


__all__ = ["AppServices", "assemble_services", "build_services", "close_services"]
