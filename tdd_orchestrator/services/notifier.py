"""
Notifier Interface.

Defines the contract for pushing state changes to listeners (agents, the
websocket layer, the UI). Delivery is at-least-once from the caller's point
of view: a notification failure never rolls back an already persisted state.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict

logger = logging.getLogger(__name__)


class Notifier(ABC):
    @abstractmethod
    async def notify_agent(self, subtask_id: str, new_state: str):
        """Tells the agents working on a subtask that its lifecycle state changed."""
        pass

    @abstractmethod
    async def broadcast(self, event: str, payload: Dict[str, Any]):
        """Publishes an event (e.g. 'state_change') to every listener."""
        pass


class LoggingNotifier(Notifier):
    """
    Default notifier: writes notifications to the log.
    Replace with a websocket-backed implementation in deployments with a UI.
    """

    async def notify_agent(self, subtask_id: str, new_state: str):
        logger.info(f"Subtask {subtask_id} is now '{new_state}'")

    async def broadcast(self, event: str, payload: Dict[str, Any]):
        logger.info(f"{event}: {payload}")
