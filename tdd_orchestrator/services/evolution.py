"""
Evolution Service - Workflow Feedback Loop

Records how workflow executions went and turns recurring failures into
structural patches for the workflow definitions:

1. log_outcome(): append one execution record
2. analyze_patterns(): group failures by (workflow, error, state)
3. propose_optimization(): derive a WorkflowPatch from the top pattern
4. apply_optimization(): patch, re-validate and persist the definition
"""

import logging
from collections import Counter
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from ..domain.models import StateMachineDefinition, WorkflowPatch
from ..execution.engine import WorkflowEngine
from ..repositories.outcome import OutcomeRepository
from ..repositories.workflow import WorkflowRepository
from ..state.models import OutcomeRecord
from .exceptions import InvalidDefinitionError

logger = logging.getLogger(__name__)

RECOVERY_STATE = "recovery"
REVIEW_STATE = "needs_review"


class FailureCluster(BaseModel):
    workflow_id: str
    error: str
    state: Optional[str] = None
    count: int

    def describe(self) -> str:
        where = f" in state {self.state}" if self.state else ""
        return f"{self.error}{where} ({self.workflow_id}, {self.count}x)"


class PatternAnalysis(BaseModel):
    patterns: List[str] = Field(default_factory=list)
    clusters: List[FailureCluster] = Field(default_factory=list)


class OptimizationProposal(BaseModel):
    workflow_id: str
    patch: WorkflowPatch
    reason: str


class SuccessRate(BaseModel):
    workflow_id: str
    success_rate: float
    total: int


class EvolutionService:
    def __init__(
        self,
        outcome_repository: OutcomeRepository,
        workflow_repository: WorkflowRepository,
        engine: Optional[WorkflowEngine] = None,
    ):
        self.outcome_repo = outcome_repository
        self.workflow_repo = workflow_repository
        self.engine = engine

    def log_outcome(
        self, workflow_id: str, success: bool, metrics: Optional[Dict[str, Any]] = None
    ) -> OutcomeRecord:
        """Append-only; storage errors propagate."""
        return self.outcome_repo.log_outcome(workflow_id, success, metrics or {})

    def analyze_patterns(self) -> PatternAnalysis:
        """
        Clusters failed outcomes by workflow, error and failing state, most
        frequent first. An empty history yields no patterns.
        """
        failures = [o for o in self.outcome_repo.list_outcomes() if not o.success]
        counts = Counter(
            (
                o.workflow_id,
                str(o.metrics.get("error") or "failure"),
                o.metrics.get("state"),
            )
            for o in failures
        )

        clusters = [
            FailureCluster(workflow_id=wf, error=error, state=state, count=count)
            for (wf, error, state), count in counts.most_common()
        ]
        return PatternAnalysis(
            patterns=[cluster.describe() for cluster in clusters], clusters=clusters
        )

    def propose_optimization(self) -> Optional[OptimizationProposal]:
        analysis = self.analyze_patterns()
        if not analysis.clusters:
            return None

        top = analysis.clusters[0]
        if "timeout" in top.error.lower():
            new_state, event = RECOVERY_STATE, "TIMEOUT"
            reason = f"Add recovery state for repeated timeouts: {top.describe()}"
        else:
            new_state, event = REVIEW_STATE, "ERROR_OCCURRED"
            reason = f"Route recurring failures to manual review: {top.describe()}"

        patch_data: Dict[str, Any] = {"add": {"states": {new_state: {}}}}
        if top.state:
            # Leave the new state the way we came in.
            patch_data["add"]["states"][new_state] = {"on": {"RETRY": top.state}}
            patch_data["add"]["transitions"] = {top.state: {event: new_state}}

        return OptimizationProposal(
            workflow_id=top.workflow_id,
            patch=WorkflowPatch.model_validate(patch_data),
            reason=reason,
        )

    def apply_optimization(
        self, workflow_id: str, patch: WorkflowPatch
    ) -> StateMachineDefinition:
        """
        Raises:
            WorkflowNotFoundError: no workflow with that id.
            InvalidDefinitionError: the patched graph does not validate.
        """
        current = self.workflow_repo.get_workflow(workflow_id)
        try:
            patched = current.apply_patch(patch)
        except (ValidationError, ValueError) as e:
            raise InvalidDefinitionError(
                f"Patch for workflow '{workflow_id}' is invalid: {e}"
            ) from e

        self.workflow_repo.update_workflow(patched)
        if self.engine is not None:
            self.engine.invalidate(workflow_id)

        logger.info(f"Applied optimization to '{workflow_id}' (now v{patched.version})")
        return patched

    def calculate_success_rate(self, workflow_id: str) -> SuccessRate:
        outcomes = self.outcome_repo.list_outcomes(workflow_id)
        if not outcomes:
            return SuccessRate(workflow_id=workflow_id, success_rate=0, total=0)

        successes = sum(1 for o in outcomes if o.success)
        return SuccessRate(
            workflow_id=workflow_id,
            success_rate=round(successes / len(outcomes), 4),
            total=len(outcomes),
        )
