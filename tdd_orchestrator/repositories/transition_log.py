from abc import ABC, abstractmethod
from typing import List, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from ..state.models import AgentTransition
from ..infrastructure.database.tables import AgentTransitionDBModel


class TransitionLogRepository(ABC):
    """
    Audit trail of agent loop transitions, queried by the events endpoint.
    """

    @abstractmethod
    def log_transition(
        self, subtask_id: str, agent: str, from_state: str, to_state: str
    ) -> AgentTransition:
        pass

    @abstractmethod
    def list_by_subtask(self, subtask_id: str) -> List[AgentTransition]:
        """Oldest first."""
        pass

    @abstractmethod
    def recent(self, limit: int = 50) -> List[AgentTransition]:
        """Newest first, at most `limit` entries."""
        pass

    def latest(self, subtask_id: str) -> Optional[AgentTransition]:
        entries = self.list_by_subtask(subtask_id)
        return entries[-1] if entries else None


class InMemoryTransitionLogRepository(TransitionLogRepository):
    def __init__(self):
        self._entries: List[AgentTransition] = []

    def log_transition(
        self, subtask_id: str, agent: str, from_state: str, to_state: str
    ) -> AgentTransition:
        entry = AgentTransition(
            id=len(self._entries) + 1,
            subtask_id=subtask_id,
            agent=agent,
            from_state=from_state,
            to_state=to_state,
        )
        self._entries.append(entry)
        return entry

    def list_by_subtask(self, subtask_id: str) -> List[AgentTransition]:
        return [entry for entry in self._entries if entry.subtask_id == subtask_id]

    def recent(self, limit: int = 50) -> List[AgentTransition]:
        return list(reversed(self._entries))[:limit]


class SqlTransitionLogRepository(TransitionLogRepository):
    def __init__(self, engine: Engine):
        self.engine = engine

    def log_transition(
        self, subtask_id: str, agent: str, from_state: str, to_state: str
    ) -> AgentTransition:
        row = AgentTransitionDBModel(
            subtask_id=subtask_id, agent=agent, from_state=from_state, to_state=to_state
        )
        with Session(self.engine) as db:
            db.add(row)
            db.commit()
            db.refresh(row)
            return AgentTransition.model_validate(row, from_attributes=True)

    def list_by_subtask(self, subtask_id: str) -> List[AgentTransition]:
        statement = (
            select(AgentTransitionDBModel)
            .where(AgentTransitionDBModel.subtask_id == subtask_id)
            .order_by(AgentTransitionDBModel.id)
        )
        with Session(self.engine) as db:
            return [
                AgentTransition.model_validate(row, from_attributes=True)
                for row in db.exec(statement).all()
            ]

    def recent(self, limit: int = 50) -> List[AgentTransition]:
        statement = (
            select(AgentTransitionDBModel)
            .order_by(AgentTransitionDBModel.id.desc())
            .limit(limit)
        )
        with Session(self.engine) as db:
            return [
                AgentTransition.model_validate(row, from_attributes=True)
                for row in db.exec(statement).all()
            ]
