"""Jinja2 rendering for catalog content templates.

Provides the ``TemplateRenderer`` used by the binder (to discover which
variables a template references) and by the merger (to substitute bound
values into paths and file content).  Rendering is strict: referencing an
unbound name is an error rather than an empty string.
"""

from __future__ import annotations

import re
from typing import Any

from jinja2 import Environment, StrictUndefined, TemplateError, meta, select_autoescape

from stackforge.errors import TemplateRenderError


class TemplateRenderer:
    """Renders inline Jinja2 templates with project-specific context.

    Catalog content lives in memory (loaded from YAML documents), so there is
    no template loader; every template is compiled from a string.
    """

    def __init__(self) -> None:
        self.env = Environment(
            autoescape=select_autoescape([], default_for_string=False),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        # Register custom filters
        self.env.filters["slugify"] = _slugify_filter
        self.env.filters["kebab_case"] = _slugify_filter
        self.env.filters["pascal_case"] = _pascal_case_filter
        self.env.filters["snake_case"] = _snake_case_filter
        self.env.filters["camel_case"] = _camel_case_filter

    def render_string(
        self,
        template_string: str,
        context: dict[str, Any],
        *,
        path: str = "<string>",
        owner: str = "<unknown>",
    ) -> str:
        """Render an inline template string with the provided context.

        Raises:
            TemplateRenderError: On syntax errors or undefined names, tagged
                with the output *path* and the *owner* that contributed it.
        """
        try:
            template = self.env.from_string(template_string)
            return template.render(**context)
        except TemplateError as exc:
            raise TemplateRenderError(path, owner, str(exc)) from exc

    def referenced_variables(
        self,
        template_string: str,
        *,
        path: str = "<string>",
        owner: str = "<unknown>",
    ) -> set[str]:
        """Return the top-level names a template reads from its context."""
        if "{" not in template_string:
            return set()
        try:
            ast = self.env.parse(template_string)
        except TemplateError as exc:
            raise TemplateRenderError(path, owner, str(exc)) from exc
        return set(meta.find_undeclared_variables(ast))


# ---------------------------------------------------------------------------
# Jinja2 custom filters
# ---------------------------------------------------------------------------

def _slugify_filter(value: str) -> str:
    """Convert a string to a URL/filename-safe slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", str(value).lower().strip())
    return slug.strip("-")


def _pascal_case_filter(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``SomeThing``."""
    parts = re.split(r"[-_\s]+", str(value))
    return "".join(word[:1].upper() + word[1:] for word in parts if word)


def _snake_case_filter(value: str) -> str:
    """Convert ``SomeThing`` or ``some-thing`` to ``some_thing``."""
    s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", str(value))
    s2 = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s1)
    return re.sub(r"[-\s]+", "_", s2).lower()


def _camel_case_filter(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``someThing``."""
    pascal = _pascal_case_filter(value)
    if pascal:
        return pascal[0].lower() + pascal[1:]
    return ""
