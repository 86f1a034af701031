import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from ..domain.models import StateMachineDefinition
from ..state.models import utc_now
from ..infrastructure.database.tables import WorkflowDBModel
from ..services.exceptions import InvalidDefinitionError, WorkflowNotFoundError

logger = logging.getLogger(__name__)


# The Interface
class WorkflowRepository(ABC):
    """
    Defines how the application accesses StateMachineDefinitions.
    This allows us change how data is accessed (Memory -> SQL -> API) later
    without changing the WorkflowEngine code.
    """

    @abstractmethod
    def get_workflow(self, name: str) -> StateMachineDefinition:
        """
        Retrieves an active workflow by name.
        Raises WorkflowNotFoundError if not found.
        """
        pass

    @abstractmethod
    def list_workflows(self) -> List[str]:
        """Names of all active workflows, sorted."""
        pass

    @abstractmethod
    def save_workflow(self, definition: StateMachineDefinition):
        """Inserts or replaces a definition."""
        pass

    @abstractmethod
    def update_workflow(self, definition: StateMachineDefinition):
        """
        Replaces an existing definition.
        Raises WorkflowNotFoundError when no row matches (zero rows affected).
        """
        pass


class InMemoryWorkflowRepository(WorkflowRepository):
    """
    Keeps definitions in a dict, for tests and local runs.
    """

    def __init__(self, workflows: Optional[Dict[str, StateMachineDefinition]] = None):
        # Index for O(1) lookup
        self._index: Dict[str, StateMachineDefinition] = dict(workflows or {})

    def get_workflow(self, name: str) -> StateMachineDefinition:
        if name not in self._index:
            raise WorkflowNotFoundError(name)
        return self._index[name]

    def list_workflows(self) -> List[str]:
        return sorted(self._index)

    def save_workflow(self, definition: StateMachineDefinition):
        self._index[definition.name] = definition

    def update_workflow(self, definition: StateMachineDefinition):
        if definition.name not in self._index:
            raise WorkflowNotFoundError(definition.name)
        self._index[definition.name] = definition


class SqlWorkflowRepository(WorkflowRepository):
    """
    Reads from the 'workflows' table (JSONB on PostgreSQL).
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    def get_workflow(self, name: str) -> StateMachineDefinition:
        with Session(self.engine) as db:
            statement = select(WorkflowDBModel).where(
                WorkflowDBModel.name == name, WorkflowDBModel.is_active == True  # noqa: E712
            )
            result = db.exec(statement).first()

            if not result:
                raise WorkflowNotFoundError(name)

            # Deserialize JSONB -> Pydantic
            try:
                return StateMachineDefinition.model_validate(result.workflow_data)
            except ValidationError as e:
                logger.error(f"Stored workflow '{name}' is invalid: {e}")
                raise InvalidDefinitionError(f"Workflow '{name}' is invalid: {e}") from e

    def list_workflows(self) -> List[str]:
        with Session(self.engine) as db:
            statement = (
                select(WorkflowDBModel.name)
                .where(WorkflowDBModel.is_active == True)  # noqa: E712
                .order_by(WorkflowDBModel.name)
            )
            return list(db.exec(statement).all())

    def save_workflow(self, definition: StateMachineDefinition):
        with Session(self.engine) as db:
            existing = db.get(WorkflowDBModel, definition.name)
            if existing:
                self._copy_into(existing, definition)
                db.add(existing)
            else:
                db.add(
                    WorkflowDBModel(
                        name=definition.name,
                        title=definition.title or definition.name.replace("_", " ").title(),
                        workflow_data=definition.to_storage(),
                        version=definition.version,
                    )
                )
            db.commit()

    def update_workflow(self, definition: StateMachineDefinition):
        with Session(self.engine) as db:
            existing = db.get(WorkflowDBModel, definition.name)
            if not existing:
                raise WorkflowNotFoundError(definition.name)
            self._copy_into(existing, definition)
            db.add(existing)
            db.commit()

    @staticmethod
    def _copy_into(row: WorkflowDBModel, definition: StateMachineDefinition):
        row.title = definition.title or row.title
        row.workflow_data = definition.to_storage()
        row.version = definition.version
        row.updated_at = utc_now()
