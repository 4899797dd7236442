"""
Merge field templating for subjects, text and HTML parts.

Placeholders use the `{{ name }}` form. Templates are compiled in a Jinja2
sandbox so user-authored content cannot reach Python internals, and names
that are not in the data render as empty strings, matching mustache.

Reserved tags, always supplied when a campaign email is rendered:
    name             the subscriber's name, when set
    unsubscribe_url  the subscriber's one-click unsubscribe link
"""

from jinja2 import ChainableUndefined, TemplateError, TemplateSyntaxError
from jinja2.sandbox import SandboxedEnvironment

RESERVED_TAGS = ('name', 'unsubscribe_url')

_text_env = SandboxedEnvironment(undefined=ChainableUndefined, autoescape=False, keep_trailing_newline=True)
_html_env = SandboxedEnvironment(undefined=ChainableUndefined, autoescape=True, keep_trailing_newline=True)


class MergeFieldSyntaxError(ValueError):
    """The template source does not compile"""

    def __init__(self, message, lineno=None):
        super().__init__(message)
        self.lineno = lineno


class MergeFieldRenderError(ValueError):
    """A compiled template failed while rendering"""
    pass


def parse(source, html=False):
    """
    Compile a template source.

    Args:
        source: Template text, None is treated as empty
        html: Escape substituted values for HTML

    Raises:
        MergeFieldSyntaxError: If the source is not a valid template
    """
    env = _html_env if html else _text_env
    try:
        return env.from_string(source or '')
    except TemplateSyntaxError as e:
        raise MergeFieldSyntaxError(e.message, lineno=e.lineno) from e


def render(template, data):
    """
    Render a compiled template with merge data.

    Raises:
        MergeFieldRenderError: If rendering fails
    """
    try:
        return template.render(dict(data or {}))
    except (TemplateError, TypeError, ValueError, ArithmeticError, LookupError) as e:
        raise MergeFieldRenderError(str(e)) from e


def is_valid(source, html=False):
    try:
        parse(source, html=html)
    except MergeFieldSyntaxError:
        return False
    return True
