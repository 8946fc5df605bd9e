import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
import pika
from splitshare.core.config import RabbitMQSettings
from .connection import create_connection, declare_exchanges

logger = logging.getLogger(__name__)


class RabbitMQProducer:
    """
    Handles publishing expense events to RabbitMQ

    One instance is shared by every request thread. BlockingConnection is not
    thread-safe, so connecting, publishing and disconnecting are serialised
    on a single lock.
    """

    def __init__(self, settings: RabbitMQSettings, connection_factory: Callable = create_connection):
        self.settings = settings
        self.connection_factory = connection_factory
        self.connection: Optional[pika.BlockingConnection] = None
        self.channel = None
        self._lock = threading.Lock()

    def connect(self) -> None:
        """Establish connection to RabbitMQ"""
        with self._lock:
            self._connect()

    def _connect(self) -> None:
        try:
            self.connection = self.connection_factory(self.settings)
            self.channel = self.connection.channel()
            declare_exchanges(self.channel, self.settings)
            logger.info("RabbitMQ producer connected successfully")
        except Exception as e:
            logger.error(f"Failed to connect RabbitMQ producer: {e}")
            raise

    def disconnect(self) -> None:
        """Close RabbitMQ connection"""
        with self._lock:
            if self.channel and not self.channel.is_closed:
                self.channel.close()
            if self.connection and not self.connection.is_closed:
                self.connection.close()
        logger.info("RabbitMQ producer disconnected")

    def publish(self, routing_key: str, payload: Dict[str, Any]) -> bool:
        """
        Publish an event message

        Args:
            routing_key: Topic routing key, e.g. "expense.created"
            payload: JSON-serialisable event body

        Returns:
            bool: True if message published successfully, False otherwise
        """
        message_data = dict(payload, timestamp=datetime.now(timezone.utc).isoformat())

        try:
            with self._lock:
                if not self.connection or self.connection.is_closed:
                    self._connect()

                self.channel.basic_publish(
                    exchange=self.settings.expense_events_exchange,
                    routing_key=routing_key,
                    body=json.dumps(message_data, default=str),
                    properties=pika.BasicProperties(
                        delivery_mode=2,  # Make message persistent
                        content_type='application/json'
                    )
                )

            logger.info(f"Published {routing_key} event")
            return True

        except Exception as e:
            logger.error(f"Failed to publish {routing_key} event: {e}")
            return False
