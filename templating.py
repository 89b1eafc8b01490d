"""Render issue descriptions from Jinja2 templates."""

from datetime import date
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError


class RenderError(Exception):
    """A template is missing, invalid, or references an unknown variable."""


class TemplateRenderer:
    """Loads templates from a directory and renders them with issue arguments.

    Undefined variables are errors, so a typo in ``template-args`` fails the
    affected occurrence instead of producing an empty description.
    """

    def __init__(self, template_dir: str | Path):
        self.template_dir = Path(template_dir)
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,
        )

    def template_names(self) -> list[str]:
        """All templates available in the template directory."""
        return sorted(self.env.list_templates())

    def render(
        self,
        template: str,
        args: dict[str, Any] | None = None,
        due: date | None = None,
        occurrence: int | None = None,
    ) -> str:
        """Render ``template`` with ``args`` plus the injected ``due`` and ``occurrence``."""
        context = dict(args or {})
        if due is not None:
            context["due"] = due.isoformat()
        if occurrence is not None:
            context["occurrence"] = occurrence

        try:
            return self.env.get_template(template).render(**context)
        except TemplateError as e:
            raise RenderError(f"failed to render template '{template}': {e}") from e
