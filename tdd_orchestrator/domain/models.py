"""
Domain Layer - State Machine Definitions

This module defines the static structure of a workflow: a named finite state
machine made of States, the Transitions leaving each state, and the metadata
(version, auto-actions) attached to it. Definitions are loaded from storage
as JSON and validated on the way in, so an engine never traverses an edge
whose target does not exist.

Definitions are value objects. They are never edited in place: a change is
expressed as a WorkflowPatch and produces a brand new definition.
"""

from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


class TransitionSpec(BaseModel):
    """
    One outgoing edge of a state.

    Stored either as a bare target name ("green") or as an object
    ({"target": "green", "guard": "testsExist"}); both forms load into this model.

    Attributes:
        target: Name of the state entered when the transition fires.
        guard: Name of a predicate in the engine's guard registry. When set,
            the predicate must hold for the supplied context.
    """
    model_config = ConfigDict(frozen=True)

    target: str
    guard: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("guard", "cond")
    )

    @model_validator(mode="before")
    @classmethod
    def _coerce_bare_target(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"target": value}
        return value


class StateSpec(BaseModel):
    """
    A single state of the machine.

    Attributes:
        on: Event name -> TransitionSpec.
        entry: Action identifiers run, in order, when the state is entered.
        exit: Action identifiers run, in order, when the state is left.
        type: "final" marks an absorbing state with no outgoing transitions.
        description: Free text, shown by the UI.
    """
    model_config = ConfigDict(frozen=True)

    on: Dict[str, TransitionSpec] = Field(default_factory=dict)
    entry: Tuple[str, ...] = ()
    exit: Tuple[str, ...] = ()
    type: Optional[Literal["final"]] = None
    description: Optional[str] = None

    @field_validator("entry", "exit", mode="before")
    @classmethod
    def _coerce_action_list(cls, value: Any) -> Any:
        if isinstance(value, str):
            return (value,)
        return value

    @property
    def is_final(self) -> bool:
        return self.type == "final"


class WorkflowMetadata(BaseModel):
    """
    Versioning information plus the state -> auto-action bindings.
    """
    model_config = ConfigDict(frozen=True, extra="allow")

    version: int = 1
    auto_actions: Dict[str, str] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("auto_actions", "autoActions"),
    )
    description: Optional[str] = None


class PatchAdditions(BaseModel):
    states: Dict[str, StateSpec] = Field(default_factory=dict)
    # state name -> {event -> transition}, merged into the existing `on` map
    transitions: Dict[str, Dict[str, TransitionSpec]] = Field(default_factory=dict)


class PatchRemovals(BaseModel):
    states: List[str] = Field(default_factory=list)


class WorkflowPatch(BaseModel):
    """
    A structural change to a definition, as proposed by the EvolutionService.

    Example:
        {"add": {"states": {"recovery": {"on": {"RETRY": "processing"}}},
                 "transitions": {"processing": {"TIMEOUT": "recovery"}}}}
    """
    add: PatchAdditions = Field(default_factory=PatchAdditions)
    remove: PatchRemovals = Field(default_factory=PatchRemovals)


class StateMachineDefinition(BaseModel):
    """
    A named, immutable finite state machine.

    Attributes:
        name: Unique identifier (the workflow id used by storage and the engine).
        title: Human readable title.
        initial_state: Entry point; must be a key of `states`.
        states: Dict mapping state names to StateSpec objects (O(1) lookup).
        metadata: Version and auto-action bindings.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    title: Optional[str] = None
    initial_state: str = Field(
        validation_alias=AliasChoices("initial_state", "initialState", "initial")
    )
    states: Dict[str, StateSpec]
    metadata: WorkflowMetadata = Field(default_factory=WorkflowMetadata)

    @model_validator(mode="after")
    def _check_graph(self) -> "StateMachineDefinition":
        if self.initial_state not in self.states:
            raise ValueError(
                f"initial state '{self.initial_state}' is not a state of '{self.name}'"
            )
        for state_name, spec in self.states.items():
            if spec.is_final and spec.on:
                raise ValueError(f"final state '{state_name}' declares transitions")
            for event, transition in spec.on.items():
                if transition.target not in self.states:
                    raise ValueError(
                        f"transition {state_name} --{event}--> '{transition.target}' "
                        "targets an unknown state"
                    )
        for state_name in self.metadata.auto_actions:
            if state_name not in self.states:
                raise ValueError(f"auto-action bound to unknown state '{state_name}'")
        return self

    @property
    def version(self) -> int:
        return self.metadata.version

    def to_storage(self) -> Dict[str, Any]:
        """JSON-compatible representation, loadable by model_validate()."""
        return self.model_dump(mode="json")

    def apply_patch(self, patch: WorkflowPatch) -> "StateMachineDefinition":
        """
        Returns a new definition with the patch applied and the version bumped.
        The result is validated like any stored definition, so a patch that
        leaves a dangling target raises instead of producing a broken graph.
        """
        data = self.to_storage()
        states = data["states"]

        for state_name in patch.remove.states:
            states.pop(state_name, None)
        for spec in states.values():
            spec["on"] = {
                event: transition
                for event, transition in spec["on"].items()
                if transition["target"] not in patch.remove.states
            }

        for state_name, spec in patch.add.states.items():
            states[state_name] = spec.model_dump(mode="json")
        for state_name, transitions in patch.add.transitions.items():
            if state_name not in states:
                raise ValueError(f"cannot add transitions to unknown state '{state_name}'")
            for event, transition in transitions.items():
                states[state_name]["on"][event] = transition.model_dump(mode="json")

        data["metadata"]["version"] = self.version + 1
        return StateMachineDefinition.model_validate(data)
