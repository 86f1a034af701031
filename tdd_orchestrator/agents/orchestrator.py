from typing import List, Optional, Sequence, Union

from pydantic import ValidationError

from ..llm.interface import LLMProvider
from ..prompts.loader import FilePromptStore
from ..schemas.actions import Action, ActionType, AgentResult
from .base import Agent, ContextInput, coerce_context, consult_llm, invalid_context


class OrchestratorAgent(Agent):
    """
    Orion: assigns work, approves or rejects completed work, escalates
    blockers, and requests the lifecycle transitions that go with them.
    """

    def __init__(
        self,
        prompt_store: Optional[FilePromptStore] = None,
        llm: Optional[LLMProvider] = None,
    ):
        self.name = "orion"
        self.role = "orchestrator"
        self.prompt = (prompt_store or FilePromptStore()).read_prompt(self.role)
        self.llm = llm

    async def execute(self, context: ContextInput = None) -> AgentResult:
        try:
            ctx = coerce_context(context)
        except ValidationError as e:
            return invalid_context(self.name, e)

        task = ctx.current_task
        if task is None:
            return AgentResult(agent=self.name)

        actions: List[Action] = []
        subtask_id, status = task.id, task.status

        if status == "pending":
            assign = self.assign_task(subtask_id, ctx.available_agents)
            if assign:
                actions.append(assign)
                actions.append(self.trigger_transition(subtask_id, "pending", "in_progress"))

        if status == "ready_for_review":
            if ctx.approved or ctx.review_required:
                actions.append(self.approve_completion(subtask_id))
                actions.append(
                    self.trigger_transition(subtask_id, "ready_for_review", "completed")
                )
            elif ctx.issues:
                actions.append(self.reject_completion(subtask_id, ctx.issues[0]))

        if status == "blocked":
            issue = ctx.blocker or (ctx.issues[0] if ctx.issues else "Unknown blocker")
            actions.append(self.escalate_blocker(subtask_id, issue, ctx.blocked_for))

        if status == "in_progress" and ctx.completed:
            actions.append(
                self.trigger_transition(subtask_id, "in_progress", "ready_for_review")
            )

        if ctx.instruction and self.llm is not None:
            actions.extend(await consult_llm(self.llm, self.prompt, ctx))

        return AgentResult(agent=self.name, actions=actions)

    # ==========================================================================
    # Action builders
    # ==========================================================================

    def assign_task(
        self, subtask_id: str, agents: Union[Sequence[str], str, None]
    ) -> Optional[Action]:
        if not agents:
            return None
        agent = agents if isinstance(agents, str) else agents[0]
        return Action(
            type=ActionType.ASSIGN_TASK, subtask_id=subtask_id, payload={"agent": agent}
        )

    def approve_completion(self, subtask_id: str) -> Action:
        return Action(type=ActionType.APPROVE_COMPLETION, subtask_id=subtask_id)

    def reject_completion(self, subtask_id: str, reason: str = "Unspecified issue") -> Action:
        return Action(
            type=ActionType.REJECT_COMPLETION, subtask_id=subtask_id, payload={"reason": reason}
        )

    def escalate_blocker(
        self, subtask_id: str, issue: str, duration: Optional[str] = None
    ) -> Action:
        return Action(
            type=ActionType.ESCALATE_BLOCKER,
            subtask_id=subtask_id,
            payload={"issue": issue, "duration": duration},
        )

    def trigger_transition(self, subtask_id: str, from_state: str, to_state: str) -> Action:
        return Action(
            type=ActionType.TRIGGER_TRANSITION,
            subtask_id=subtask_id,
            payload={"from": from_state, "to": to_state},
        )
