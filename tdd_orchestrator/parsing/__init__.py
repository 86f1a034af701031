"""
Parsing Layer - Agent Output to Actions

ResponseParser handles natural-language output; XmlOutputParser handles the
<tool> convention used by the agent execution loop.
"""

from tdd_orchestrator.parsing.response_parser import ResponseParser
from tdd_orchestrator.parsing.xml_parser import XmlOutputParser

__all__ = [
    "ResponseParser",
    "XmlOutputParser",
]
