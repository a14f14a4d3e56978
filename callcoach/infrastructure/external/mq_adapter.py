"""RabbitMQ publisher for pipeline events."""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

import pika
from fastapi.concurrency import run_in_threadpool
from pika.exceptions import AMQPError

from callcoach.config.settings import NotificationConfig
from callcoach.domain.models import utc_now
from callcoach.services.notifications import EventPublisher

logger = logging.getLogger(__name__)


class RabbitMqPublisher(EventPublisher):
    """Publish events to a topic exchange, routing key = event topic."""

    def __init__(self, config: NotificationConfig) -> None:
        self.exchange = config.exchange
        self.credentials = pika.PlainCredentials(
            config.rabbitmq_username,
            config.rabbitmq_password.get_secret_value(),
        )
        self.connection_params = pika.ConnectionParameters(
            host=config.rabbitmq_host,
            port=config.rabbitmq_port,
            credentials=self.credentials,
        )

    def _get_connection(self) -> pika.BlockingConnection:
        """Get a connection to RabbitMQ"""
        return pika.BlockingConnection(self.connection_params)

    def _publish_blocking(self, routing_key: str, body: bytes) -> None:
        connection = self._get_connection()
        try:
            channel = connection.channel()
            channel.exchange_declare(
                exchange=self.exchange,
                exchange_type="topic",
                durable=True,
            )
            channel.basic_publish(
                exchange=self.exchange,
                routing_key=routing_key,
                body=body,
                properties=pika.BasicProperties(
                    content_type="application/json",
                    delivery_mode=2,  # Make message persistent
                ),
            )
        finally:
            connection.close()

    async def publish(self, topic: str, event: str, payload: Mapping[str, Any]) -> None:
        body = json.dumps(
            {
                "topic": topic,
                "event": event,
                "payload": dict(payload),
                "publishedAt": utc_now().isoformat(),
            },
            default=str,
        ).encode("utf-8")
        try:
            await run_in_threadpool(self._publish_blocking, topic, body)
        except AMQPError as exc:
            logger.error("Failed to publish %s to RabbitMQ: %s", event, exc)
            raise


__all__ = ["RabbitMqPublisher"]
