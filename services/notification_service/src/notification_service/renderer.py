"""Jinja2 template rendering for notification content."""

from collections.abc import Iterable, Mapping
from typing import Any

from jinja2 import StrictUndefined, TemplateError, TemplateSyntaxError, meta
from jinja2.sandbox import SandboxedEnvironment

_html_env = SandboxedEnvironment(
    autoescape=True,
    undefined=StrictUndefined,
    keep_trailing_newline=False,
)
# SMS, push and subject lines are plain text; HTML escaping would corrupt them.
_text_env = SandboxedEnvironment(
    autoescape=False,
    undefined=StrictUndefined,
    keep_trailing_newline=False,
)


class TemplateRenderError(ValueError):
    """A template failed to parse or render with the given variables."""


def render_template(
    template_str: str, context: Mapping[str, Any], *, autoescape: bool = True
) -> str:
    """Render a Jinja2 template string with the given context.

    Uses SandboxedEnvironment to prevent SSTI and StrictUndefined
    to raise on missing variables.
    All context values are converted to strings for safe template rendering.
    """
    env = _html_env if autoescape else _text_env
    str_context = {k: str(v) for k, v in context.items()}
    try:
        return env.from_string(template_str).render(str_context)
    except TemplateError as exc:
        raise TemplateRenderError(str(exc)) from exc


def extract_variables(template_str: str) -> set[str]:
    """Names the template reads from its context."""
    try:
        parsed = _text_env.parse(template_str)
    except TemplateSyntaxError as exc:
        raise TemplateRenderError(str(exc)) from exc
    return meta.find_undeclared_variables(parsed)


def missing_variables(
    variables: Mapping[str, Any],
    *templates: str | None,
    required: Iterable[str] = (),
) -> list[str]:
    """Sorted names that *templates* or *required* need but *variables* lacks."""
    needed = set(required)
    for template_str in templates:
        if template_str:
            needed |= extract_variables(template_str)
    return sorted(needed - variables.keys())


def validate_syntax(template_str: str) -> list[str]:
    """Parse errors for *template_str*; an empty list means it is valid."""
    try:
        _text_env.parse(template_str)
    except TemplateSyntaxError as exc:
        return [f"line {exc.lineno}: {exc.message}"]
    return []
