"""
XML Tool-Call Parser

Agents driven by the execution loop answer with tool calls of the form:

    <tool name="FileSystemTool" action="write">
      <path>tests/test_app.py</path>
      <content><![CDATA[def test_ok(): assert True]]></content>
    </tool>

LLM output is rarely well-formed XML, so this is a tolerant regex scan
rather than a real XML parse: unterminated or malformed tags simply do not
match, and the parser returns fewer (or zero) calls instead of raising.
"""

import re
from typing import Dict, List, Union
from xml.sax.saxutils import escape

from ..schemas.actions import Action, ActionType, ToolResult

TOOL_PATTERN = re.compile(r"<tool\s+([^>]+)>([\s\S]*?)</tool>")
ATTRIBUTE_PATTERN = re.compile(r'(\w+)="([^"]+)"')
# A child element holds either a CDATA section or plain text.
CHILD_PATTERN = re.compile(r"<(\w+)>\s*(?:<!\[CDATA\[([\s\S]*?)\]\]>|([^<]*))\s*</\1>")

XML_ENTITIES = {'"': "&quot;", "'": "&apos;"}


def _escape(value) -> str:
    if not isinstance(value, str):
        return ""
    return escape(value, XML_ENTITIES)


class XmlOutputParser:

    def extract_tool_calls(self, text: str) -> List[Dict[str, str]]:
        """
        Returns one flat dict per <tool> element: its attributes plus one key
        per child element (CDATA unwrapped).
        """
        tool_calls = []
        for match in TOOL_PATTERN.finditer(text or ""):
            attributes, body = match.group(1), match.group(2)
            call: Dict[str, str] = dict(ATTRIBUTE_PATTERN.findall(attributes))
            for child in CHILD_PATTERN.finditer(body):
                tag, cdata, plain = child.groups()
                call[tag] = cdata if cdata is not None else plain
            tool_calls.append(call)
        return tool_calls

    def extract_actions(self, text: str) -> List[Action]:
        """Tool calls wrapped as `tool_call` Actions for the dispatcher."""
        return [
            Action(type=ActionType.TOOL_CALL, payload=call)
            for call in self.extract_tool_calls(text)
        ]

    def format_tool_result(self, result: Union[ToolResult, Dict]) -> str:
        if not isinstance(result, ToolResult):
            result = ToolResult.model_validate(result)

        opening = (
            f'<result tool="{_escape(result.tool)}" action="{_escape(result.action)}" '
            f'success="{"true" if result.success else "false"}">'
        )
        if result.success:
            return f"{opening}\n  <output>{_escape(result.output)}</output>\n</result>"
        return f"{opening}\n  <error>{_escape(result.error)}</error>\n</result>"
