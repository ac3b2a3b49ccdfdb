"""Template rendering behind a narrow interface.

The runtime only ever calls ``render(template_name, context)``; swapping
the engine means providing another ``TemplateRenderer``.
"""

import os
import platform
import string
from pathlib import Path
from typing import Any, Mapping, Protocol

from .exceptions import ConfigError
from .types import Environment


class TemplateRenderer(Protocol):
    """Anything that can turn a named template plus context into text."""

    def render(self, template_name: str, context: Mapping[str, Any]) -> str:
        ...


class _LenientFormatter(string.Formatter):
    """``str.format`` semantics, except unresolvable fields render as ``""``."""

    def get_field(self, field_name, args, kwargs):
        try:
            return super().get_field(field_name, args, kwargs)
        except (KeyError, AttributeError, IndexError, TypeError):
            return "", field_name


class FormatRenderer:
    """Render templates with Python format syntax (``{env.cwd}``, ``{event.value}``).

    Example:
        renderer = FormatRenderer({"greet": "Hello {name}{missing}"})
        renderer.render("greet", {"name": "forge"})  # "Hello forge"
    """

    def __init__(self, templates: Mapping[str, str]):
        self.templates = dict(templates)
        self._formatter = _LenientFormatter()

    def render(self, template_name: str, context: Mapping[str, Any]) -> str:
        """Render a template by name.

        Raises:
            ConfigError: If no template has this name.
        """
        try:
            template = self.templates[template_name]
        except KeyError:
            raise ConfigError("Unknown template", key=template_name)
        return self._formatter.vformat(template, (), dict(context))


def detect_environment(cwd: str | Path | None = None) -> Environment:
    """Describe the host for the ``env`` template variable."""
    shell = os.environ.get("SHELL") or os.environ.get("COMSPEC") or "sh"
    try:
        home = str(Path.home())
    except RuntimeError:
        home = None
    return Environment(
        os=platform.system() or "unknown",
        cwd=str(Path(cwd).resolve() if cwd is not None else Path.cwd()),
        shell=shell,
        home=home,
    )
