"""
Response Parser - Natural Language Action Extraction

Turns free-form agent/LLM output into structured Actions. The patterns are
heuristic and deliberately kept behind this one class: only the action
categories and the closed-set check on status values are relied upon by the
rest of the system.

parse() is pure: the same text always yields the same actions, and
non-empty text always yields at least one action (a `generic` fallback).
"""

import re
from typing import List, Set, Tuple

from ..schemas.actions import Action, ActionType, CodeBlock
from ..state.models import SubtaskStatus

FILE_EXTENSIONS = "py|pyi|js|jsx|ts|tsx|vue|yml|yaml|json|md|css|html|toml|txt|cfg|ini|sql"

FILE_PATTERN = re.compile(
    r"(?:create|write|implement)\s+(?:the\s+)?(?:file|module|class)\s+"
    r"['\"`]?([\w/.\-]+\.(?:" + FILE_EXTENSIONS + r"))\b['\"`]?"
    r"(?:\s+(?:with|containing|including)\s+(.+?)(?=\.\s|\.$|$))?",
    re.IGNORECASE,
)

STATUS_PATTERN = re.compile(
    r"(?:update|change|set)\s+(?:the\s+)?(?:status|state)\s+(?:to\s+)?['\"`]?(\w+)['\"`]?",
    re.IGNORECASE,
)

QUESTION_PATTERNS = (
    # Explicit prefix: runs until the next "action"/"next"/"step" word or end of text.
    re.compile(r"\bquestion:\s*(.+?)(?=\s*(?:\baction\b|\bnext\b|\bstep\b|$))", re.IGNORECASE),
    re.compile(r"\bwhat\s+(?:should|is|are|does|do)\s+[^?.!]+\?", re.IGNORECASE),
    re.compile(r"\bhow\s+(?:should|do|does|can)\s+[^?.!]+\?", re.IGNORECASE),
    re.compile(r"\bshould\s+[^?.!]+\?", re.IGNORECASE),
    re.compile(r"\bcan\s+[^?.!]+\?", re.IGNORECASE),
)

CODE_BLOCK_PATTERN = re.compile(r"```(\w*)\n([\s\S]*?)```")


def normalize(text: str) -> str:
    """Collapses all whitespace (newlines included) into single spaces."""
    return re.sub(r"\s+", " ", text).strip()


class ResponseParser:
    """
    Extracts create_file, update_status, ask_question and generic actions.
    """

    def parse(self, raw_text: str) -> List[Action]:
        text = normalize(raw_text or "")
        if not text:
            return []

        actions: List[Action] = []
        actions.extend(self.extract_file_creations(text))
        actions.extend(self.extract_status_updates(text))
        actions.extend(self.extract_questions(text))

        # Non-empty input is never silently dropped.
        if not actions:
            actions.append(Action(type=ActionType.GENERIC, payload={"text": text}))

        return actions

    def extract_file_creations(self, text: str) -> List[Action]:
        actions = []
        for match in FILE_PATTERN.finditer(text):
            path = match.group(1)
            content_hint = (match.group(2) or "").strip()
            actions.append(
                Action(
                    type=ActionType.CREATE_FILE,
                    payload={
                        "path": path,
                        "content": content_hint or f"# Auto-generated file: {path}",
                        "description": f"Create {path}",
                    },
                )
            )
        return actions

    def extract_status_updates(self, text: str) -> List[Action]:
        valid = SubtaskStatus.values()
        actions = []
        for match in STATUS_PATTERN.finditer(text):
            status = match.group(1).lower()
            # Values outside the lifecycle are left unparsed.
            if status not in valid:
                continue
            actions.append(
                Action(
                    type=ActionType.UPDATE_STATUS,
                    payload={"status": status, "description": f"Update status to {status}"},
                )
            )
        return actions

    def extract_questions(self, text: str) -> List[Action]:
        questions: List[str] = []
        seen: Set[str] = set()
        # Every span any earlier match covered, duplicates included.
        covered: List[Tuple[int, int]] = []
        for pattern in QUESTION_PATTERNS:
            for match in pattern.finditer(text):
                group = 1 if match.groups() else 0
                start, end = match.span(group)
                body = match.group(group).strip().rstrip("?").strip()
                if not body:
                    continue
                # "What should we do?" also matches the "should ...?" pattern.
                nested = any(lo <= start and end <= hi for lo, hi in covered)
                covered.append((start, end))
                key = body.lower()
                if nested or key in seen:
                    continue
                seen.add(key)
                questions.append(f"{body}?")

        return [
            Action(
                type=ActionType.ASK_QUESTION,
                payload={"question": question, "description": f"Question: {question}"},
            )
            for question in questions
        ]

    def extract_code_blocks(self, raw_text: str) -> List[CodeBlock]:
        return [
            CodeBlock(language=match.group(1) or "text", content=match.group(2).strip())
            for match in CODE_BLOCK_PATTERN.finditer(raw_text or "")
        ]

    def parse_with_code(self, raw_text: str) -> List[Action]:
        """
        parse() plus code blocks: every create_file action takes the content
        of the FIRST code block, even when several files and several blocks
        are present.
        """
        actions = self.parse(raw_text)
        blocks = self.extract_code_blocks(raw_text)
        if not blocks:
            return actions

        # Blocks are not paired with files; the first block wins for all of them.
        first = blocks[0].content
        return [
            action.model_copy(update={"payload": {**action.payload, "content": first}})
            if action.type == ActionType.CREATE_FILE
            else action
            for action in actions
        ]
