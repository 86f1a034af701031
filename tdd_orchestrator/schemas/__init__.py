"""
Schemas - Structured Actions and Agent Results

Defines the pydantic models exchanged between agents, parsers and the
dispatch layer.
"""

from tdd_orchestrator.schemas.actions import (
    Action,
    ActionType,
    AgentResult,
    CodeBlock,
    TaskContext,
    TaskRef,
    ToolResult,
)

__all__ = [
    "Action",
    "ActionType",
    "AgentResult",
    "CodeBlock",
    "TaskContext",
    "TaskRef",
    "ToolResult",
]
