"""
Tests for expense event publishing.
"""
import json
import pytest
import threading
import time
from decimal import Decimal
from unittest.mock import MagicMock, Mock

from splitshare.core.config import RabbitMQSettings
from splitshare.rabbitmq.producer import RabbitMQProducer
from splitshare.services.notification_service import ExpenseNotifier, create_notifier


@pytest.fixture
def rabbitmq_settings():
    return RabbitMQSettings()


@pytest.fixture
def connection():
    conn = MagicMock()
    conn.is_closed = False
    conn.channel.return_value.is_closed = False
    return conn


@pytest.fixture
def producer(rabbitmq_settings, connection):
    return RabbitMQProducer(rabbitmq_settings, connection_factory=lambda settings: connection)


@pytest.mark.unit
class TestRabbitMQProducer:

    def test_publish_connects_lazily_and_declares_exchange(self, producer, connection):
        assert producer.publish("expense.created", {"expense_id": "e1"}) is True

        channel = connection.channel.return_value
        channel.exchange_declare.assert_called_once_with(
            exchange="expense.events", exchange_type="topic", durable=True
        )
        kwargs = channel.basic_publish.call_args.kwargs
        assert kwargs["exchange"] == "expense.events"
        assert kwargs["routing_key"] == "expense.created"
        body = json.loads(kwargs["body"])
        assert body["expense_id"] == "e1"
        assert "timestamp" in body
        assert kwargs["properties"].delivery_mode == 2

    def test_publish_serialises_decimals(self, producer, connection):
        producer.publish("expense.created", {"amount": Decimal("12.50")})
        body = json.loads(connection.channel.return_value.basic_publish.call_args.kwargs["body"])
        assert body["amount"] == "12.50"

    def test_publish_failure_returns_false(self, producer, connection):
        connection.channel.return_value.basic_publish.side_effect = RuntimeError("channel closed")
        assert producer.publish("expense.created", {}) is False

    def test_connection_failure_returns_false(self, rabbitmq_settings):
        def refuse(settings):
            raise ConnectionError("refused")

        producer = RabbitMQProducer(rabbitmq_settings, connection_factory=refuse)
        assert producer.publish("expense.created", {}) is False

    def test_concurrent_publishes_share_one_connection(self, rabbitmq_settings, connection):
        opened = []

        def slow_factory(settings):
            time.sleep(0.05)
            opened.append(connection)
            return connection

        producer = RabbitMQProducer(rabbitmq_settings, connection_factory=slow_factory)
        threads = [
            threading.Thread(target=producer.publish, args=("expense.created", {"n": n}))
            for n in range(5)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(opened) == 1
        assert connection.channel.return_value.basic_publish.call_count == 5

    def test_disconnect_closes_channel_and_connection(self, producer, connection):
        producer.connect()
        producer.disconnect()
        connection.channel.return_value.close.assert_called_once()
        connection.close.assert_called_once()


@pytest.mark.unit
class TestExpenseNotifier:

    def make_expense(self):
        expense = Mock(id="e1", group_id="g1", paid_by="alice", amount=Decimal("90.00"), currency="EUR")
        expense.splits = [Mock(user_id="alice"), Mock(user_id="bob")]
        return expense

    def test_expense_created_payload(self, rabbitmq_settings):
        producer = Mock()
        notifier = ExpenseNotifier(producer, rabbitmq_settings)

        notifier.expense_created(self.make_expense(), "alice")

        producer.publish.assert_called_once_with("expense.created", {
            "expense_id": "e1",
            "group_id": "g1",
            "paid_by": "alice",
            "amount": "90.00",
            "currency": "EUR",
            "participants": ["alice", "bob"],
            "actor_id": "alice"
        })

    def test_split_events_use_their_routing_keys(self, rabbitmq_settings):
        producer = Mock()
        notifier = ExpenseNotifier(producer, rabbitmq_settings)
        split = Mock(id="s1", expense_id="e1", user_id="bob", amount=Decimal("45.00"), settled=True)

        notifier.split_settled(split, "bob")
        notifier.split_unsettled(split, "alice")
        notifier.expense_deleted("e1", None, "alice")

        keys = [c.args[0] for c in producer.publish.call_args_list]
        assert keys == ["expense.split.settled", "expense.split.unsettled", "expense.deleted"]

    def test_publish_exception_is_swallowed(self, rabbitmq_settings):
        producer = Mock()
        producer.publish.side_effect = RuntimeError("boom")
        notifier = ExpenseNotifier(producer, rabbitmq_settings)

        notifier.expense_updated(self.make_expense(), "alice")
        notifier.close()

    def test_disabled_notifier_is_a_no_op(self, rabbitmq_settings):
        notifier = create_notifier(rabbitmq_settings, enabled=False)
        assert notifier.producer is None

        notifier.expense_created(self.make_expense(), "alice")
        notifier.close()

    def test_enabled_notifier_has_producer(self, rabbitmq_settings):
        notifier = create_notifier(rabbitmq_settings, enabled=True)
        assert isinstance(notifier.producer, RabbitMQProducer)
        # Nothing is opened until the first event
        assert notifier.producer.connection is None
