from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from ..state.models import OutcomeRecord
from ..infrastructure.database.tables import WorkflowOutcomeDBModel


class OutcomeRepository(ABC):
    """
    Append-only store of workflow execution outcomes.
    """

    @abstractmethod
    def log_outcome(
        self, workflow_id: str, success: bool, metrics: Dict[str, Any]
    ) -> OutcomeRecord:
        pass

    @abstractmethod
    def list_outcomes(self, workflow_id: Optional[str] = None) -> List[OutcomeRecord]:
        """All outcomes, oldest first, optionally restricted to one workflow."""
        pass


class InMemoryOutcomeRepository(OutcomeRepository):
    def __init__(self):
        self._records: List[OutcomeRecord] = []

    def log_outcome(
        self, workflow_id: str, success: bool, metrics: Dict[str, Any]
    ) -> OutcomeRecord:
        record = OutcomeRecord(
            id=len(self._records) + 1,
            workflow_id=workflow_id,
            success=success,
            metrics=dict(metrics),
        )
        self._records.append(record)
        return record

    def list_outcomes(self, workflow_id: Optional[str] = None) -> List[OutcomeRecord]:
        return [
            record
            for record in self._records
            if workflow_id is None or record.workflow_id == workflow_id
        ]


class SqlOutcomeRepository(OutcomeRepository):
    def __init__(self, engine: Engine):
        self.engine = engine

    def log_outcome(
        self, workflow_id: str, success: bool, metrics: Dict[str, Any]
    ) -> OutcomeRecord:
        row = WorkflowOutcomeDBModel(
            workflow_id=workflow_id, success=success, metrics=dict(metrics)
        )
        with Session(self.engine) as db:
            db.add(row)
            db.commit()
            db.refresh(row)
            return self._to_domain(row)

    def list_outcomes(self, workflow_id: Optional[str] = None) -> List[OutcomeRecord]:
        statement = select(WorkflowOutcomeDBModel).order_by(WorkflowOutcomeDBModel.id)
        if workflow_id is not None:
            statement = statement.where(WorkflowOutcomeDBModel.workflow_id == workflow_id)
        with Session(self.engine) as db:
            return [self._to_domain(row) for row in db.exec(statement).all()]

    @staticmethod
    def _to_domain(row: WorkflowOutcomeDBModel) -> OutcomeRecord:
        return OutcomeRecord(
            id=row.id,
            workflow_id=row.workflow_id,
            success=row.success,
            metrics=row.metrics or {},
            created_at=row.created_at,
        )
