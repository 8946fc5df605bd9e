import logging
import pika
from splitshare.core.config import RabbitMQSettings

logger = logging.getLogger(__name__)


def create_connection(settings: RabbitMQSettings) -> pika.BlockingConnection:
    """Open a blocking connection using the configured credentials"""
    credentials = pika.PlainCredentials(settings.user, settings.password)
    parameters = pika.ConnectionParameters(
        host=settings.host,
        port=settings.port,
        virtual_host=settings.vhost,
        credentials=credentials,
        heartbeat=settings.heartbeat,
        blocked_connection_timeout=settings.blocked_connection_timeout
    )
    return pika.BlockingConnection(parameters)


def declare_exchanges(channel, settings: RabbitMQSettings) -> None:
    channel.exchange_declare(
        exchange=settings.expense_events_exchange,
        exchange_type="topic",
        durable=True
    )
    logger.info(f"Declared exchange {settings.expense_events_exchange}")
