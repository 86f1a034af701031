from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

# Domain & Infra Imports
from ..state.models import Subtask, SubtaskStatus, utc_now
from ..infrastructure.database.tables import SubtaskDBModel
from ..services.exceptions import SubtaskNotFoundError


class SubtaskRepository(ABC):
    """
    Defines how the application persists subtasks and their lifecycle state.
    The backing store owns the state; services only ever read it, compute the
    next state and write it back.
    """

    @abstractmethod
    def create(self, subtask_id: str, title: str = "") -> Subtask:
        """Registers a new subtask in the initial (pending) state."""
        pass

    @abstractmethod
    def get(self, subtask_id: str) -> Optional[Subtask]:
        pass

    @abstractmethod
    def save_subtask_state(self, subtask_id: str, state: str):
        """Upsert: writes the state, creating the subtask if needed."""
        pass

    @abstractmethod
    def update_subtask_state(self, subtask_id: str, state: str):
        """Writes the state of an existing subtask. Raises SubtaskNotFoundError otherwise."""
        pass

    @abstractmethod
    def list_subtasks(self) -> List[Subtask]:
        pass

    def get_subtask_state(self, subtask_id: str) -> Optional[str]:
        subtask = self.get(subtask_id)
        return subtask.status.value if subtask else None


class InMemorySubtaskRepository(SubtaskRepository):
    """
    Uses in-memory dictionary for subtask storage for testing/dev purposes.
    """

    def __init__(self):
        self._store: Dict[str, Subtask] = {}

    def create(self, subtask_id: str, title: str = "") -> Subtask:
        subtask = Subtask(id=subtask_id, title=title)
        self._store[subtask_id] = subtask
        return subtask

    def get(self, subtask_id: str) -> Optional[Subtask]:
        return self._store.get(subtask_id)

    def save_subtask_state(self, subtask_id: str, state: str):
        existing = self._store.get(subtask_id)
        title = existing.title if existing else ""
        self._store[subtask_id] = Subtask(
            id=subtask_id, title=title, status=SubtaskStatus(state)
        )

    def update_subtask_state(self, subtask_id: str, state: str):
        if subtask_id not in self._store:
            raise SubtaskNotFoundError(subtask_id)
        self.save_subtask_state(subtask_id, state)

    def list_subtasks(self) -> List[Subtask]:
        return list(self._store.values())


class SqlSubtaskRepository(SubtaskRepository):
    """
    Stores subtasks in the 'subtasks' table. Row-level atomicity of the
    single-row update is left to the database.
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    def create(self, subtask_id: str, title: str = "") -> Subtask:
        domain_subtask = Subtask(id=subtask_id, title=title)

        with Session(self.engine) as db:
            db.add(
                SubtaskDBModel(
                    id=subtask_id, title=title, status=domain_subtask.status.value
                )
            )
            db.commit()

        return domain_subtask

    def get(self, subtask_id: str) -> Optional[Subtask]:
        with Session(self.engine) as db:
            result = db.get(SubtaskDBModel, subtask_id)
            if not result:
                return None
            return self._to_domain(result)

    def save_subtask_state(self, subtask_id: str, state: str):
        status = SubtaskStatus(state)
        with Session(self.engine) as db:
            result = db.get(SubtaskDBModel, subtask_id)
            if result is None:
                result = SubtaskDBModel(id=subtask_id)
            result.status = status.value
            result.updated_at = utc_now()
            db.add(result)
            db.commit()

    def update_subtask_state(self, subtask_id: str, state: str):
        status = SubtaskStatus(state)
        with Session(self.engine) as db:
            result = db.get(SubtaskDBModel, subtask_id)
            if result is None:
                raise SubtaskNotFoundError(subtask_id)
            result.status = status.value
            result.updated_at = utc_now()
            db.add(result)
            db.commit()

    def list_subtasks(self) -> List[Subtask]:
        with Session(self.engine) as db:
            rows = db.exec(select(SubtaskDBModel).order_by(SubtaskDBModel.id)).all()
            return [self._to_domain(row) for row in rows]

    @staticmethod
    def _to_domain(row: SubtaskDBModel) -> Subtask:
        return Subtask(
            id=row.id,
            title=row.title,
            status=SubtaskStatus(row.status),
            updated_at=row.updated_at,
        )
