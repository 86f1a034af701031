"""
Prompt Store.

Role prompts and the per-step user message are Jinja2 templates shipped next
to this module. The role prompts are checked when the module is imported, so
a packaging mistake shows up at startup rather than on an agent's first call.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Union

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .templates import Template

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"
TEMPLATE_SUFFIX = ".jinja2"

ROLE_TEMPLATES: Dict[str, str] = {
    "orchestrator": Template.ORCHESTRATOR,
    "tester": Template.TESTER,
    "developer": Template.DEVELOPER,
}


def template_names() -> List[str]:
    return [
        value
        for name, value in vars(Template).items()
        if not name.startswith("_") and isinstance(value, str)
    ]


def _check_templates(directory: Path):
    missing = [
        name for name in template_names() if not (directory / f"{name}{TEMPLATE_SUFFIX}").exists()
    ]
    if missing:
        raise FileNotFoundError(f"Prompt templates missing from {directory}: {', '.join(missing)}")


_check_templates(TEMPLATES_DIR)


@lru_cache(maxsize=None)
def _environment(directory: Path) -> Environment:
    return Environment(
        loader=FileSystemLoader(directory),
        autoescape=select_autoescape(default=False),
        trim_blocks=True,
        lstrip_blocks=True,
    )


def render(template_name: str, directory: Path = TEMPLATES_DIR, **context) -> str:
    """Renders `<template_name>.jinja2`; undefined variables render empty."""
    logger.debug(f"Rendering prompt template '{template_name}'")
    template = _environment(directory).get_template(f"{template_name}{TEMPLATE_SUFFIX}")
    return template.render(**context)


class FilePromptStore:
    """
    read_prompt(role) -> the role's system prompt, stripped.
    Unknown roles raise KeyError.
    """

    def __init__(self, templates_dir: Union[str, Path] = TEMPLATES_DIR):
        self.templates_dir = Path(templates_dir)
        if self.templates_dir != TEMPLATES_DIR:
            _check_templates(self.templates_dir)

    def read_prompt(self, role: str, **context) -> str:
        return render(ROLE_TEMPLATES[role], self.templates_dir, **context).strip()
