import logging
from typing import Optional
from splitshare.core.config import RabbitMQSettings
from splitshare.models.expenses import Expense, ExpenseSplit
from splitshare.rabbitmq.producer import RabbitMQProducer

logger = logging.getLogger(__name__)


class ExpenseNotifier:
    """
    Fire-and-forget publisher of expense events.

    Called after a mutation has been committed. A failure here is logged and
    swallowed so it can never abort or roll back the mutation itself.
    Without a producer every notification is a no-op.
    """

    def __init__(self, producer: Optional[RabbitMQProducer], settings: RabbitMQSettings):
        self.producer = producer
        self.settings = settings

    def expense_created(self, expense: Expense, actor_id: str) -> None:
        self._send(self.settings.expense_created_key, self._expense_payload(expense, actor_id))

    def expense_updated(self, expense: Expense, actor_id: str) -> None:
        self._send(self.settings.expense_updated_key, self._expense_payload(expense, actor_id))

    def expense_deleted(self, expense_id: str, group_id: Optional[str], actor_id: str) -> None:
        self._send(self.settings.expense_deleted_key, {
            "expense_id": expense_id,
            "group_id": group_id,
            "actor_id": actor_id
        })

    def split_settled(self, split: ExpenseSplit, actor_id: str) -> None:
        self._send(self.settings.split_settled_key, self._split_payload(split, actor_id))

    def split_unsettled(self, split: ExpenseSplit, actor_id: str) -> None:
        self._send(self.settings.split_unsettled_key, self._split_payload(split, actor_id))

    def close(self) -> None:
        if self.producer is None:
            return
        try:
            self.producer.disconnect()
        except Exception as e:
            logger.warning(f"Error while closing notifier: {e}")

    def _send(self, routing_key: str, payload: dict) -> None:
        if self.producer is None:
            logger.debug(f"Notifications disabled, dropping {routing_key}")
            return
        try:
            if not self.producer.publish(routing_key, payload):
                logger.warning(f"Notification {routing_key} was not delivered")
        except Exception as e:
            logger.error(f"Notification {routing_key} failed: {e}")

    @staticmethod
    def _expense_payload(expense: Expense, actor_id: str) -> dict:
        return {
            "expense_id": expense.id,
            "group_id": expense.group_id,
            "paid_by": expense.paid_by,
            "amount": str(expense.amount),
            "currency": expense.currency,
            "participants": [split.user_id for split in expense.splits],
            "actor_id": actor_id
        }

    @staticmethod
    def _split_payload(split: ExpenseSplit, actor_id: str) -> dict:
        return {
            "split_id": split.id,
            "expense_id": split.expense_id,
            "user_id": split.user_id,
            "amount": str(split.amount),
            "settled": split.settled,
            "actor_id": actor_id
        }


def create_notifier(settings: RabbitMQSettings, enabled: bool) -> ExpenseNotifier:
    """Build the notifier once at process start"""
    if not enabled:
        logger.info("Expense notifications disabled")
        return ExpenseNotifier(None, settings)
    # Connection is opened lazily on first publish
    return ExpenseNotifier(RabbitMQProducer(settings), settings)
