"""Environment-aware rendering of SQL templates.

Templates are plain text with two extensions:

* Flat conditional blocks on the environment, each directive on its own
  line::

      {% if ENV == 'tst' %}
      DROP DATABASE IF EXISTS "go-labs-tst";
      {% endif %}

  ``!=`` includes the block for every other environment. Blocks cannot be
  nested.

* ``{{NAME}}`` tokens replaced with variable values.

Rendering runs in two passes: conditionals are resolved first, then tokens
are substituted in a single scan. Substituted values are never scanned
again, so a value that happens to contain ``{{...}}`` is emitted as-is.

Malformed directives fail closed with :class:`TemplateSyntaxError`.
"""

import re
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Union

from pg_provisioner.core.exceptions import TemplateRenderError, TemplateSyntaxError
from pg_provisioner.utils.logging import StructuredLogger, get_logger

_DIRECTIVE_RE = re.compile(r"^\s*\{%\s*(?P<body>.*?)\s*%\}\s*$")
_IF_RE = re.compile(r"^if\s+ENV\s*(?P<operator>==|!=)\s*'(?P<literal>[^']*)'$")
_ENDIF = "endif"
_TOKEN_RE = re.compile(r"\{\{([A-Z0-9_]+)\}\}")


@dataclass(frozen=True)
class LiteralLine:
    """A template line emitted unconditionally (before token substitution)."""

    text: str


@dataclass
class ConditionalBlock:
    """Lines emitted only when the environment satisfies the condition.

    Attributes:
        operator: ``==`` or ``!=``
        literal: Environment identifier compared against
        lines: Raw lines of the block body, with their line endings
        line_number: 1-based line of the opening directive
    """

    operator: str
    literal: str
    lines: List[str] = field(default_factory=list)
    line_number: int = 0

    def matches(self, environment: str) -> bool:
        """Return whether the block is included for ``environment``."""
        if self.operator == "==":
            return environment == self.literal
        return environment != self.literal


TemplateNode = Union[LiteralLine, ConditionalBlock]


def parse_template(template_text: str) -> List[TemplateNode]:
    """Parse template text into a flat list of nodes.

    Args:
        template_text: Raw template text

    Returns:
        Nodes in document order

    Raises:
        TemplateSyntaxError: For nested blocks, an ``endif`` without an open
            block, a block left open at end of input, or an unknown directive
    """
    nodes: List[TemplateNode] = []
    open_block: Optional[ConditionalBlock] = None

    for line_number, line in enumerate(template_text.splitlines(keepends=True), 1):
        directive = _DIRECTIVE_RE.match(line)
        if directive is None:
            if "{%" in line or "%}" in line:
                raise TemplateSyntaxError(
                    "Directive must be on a line of its own", line_number
                )
            if open_block is not None:
                open_block.lines.append(line)
            else:
                nodes.append(LiteralLine(line))
            continue

        body = directive.group("body")
        condition = _IF_RE.match(body)
        if condition is not None:
            if open_block is not None:
                raise TemplateSyntaxError(
                    "Nested conditional blocks are not supported "
                    f"(block opened at line {open_block.line_number})",
                    line_number,
                )
            open_block = ConditionalBlock(
                operator=condition.group("operator"),
                literal=condition.group("literal"),
                line_number=line_number,
            )
        elif body == _ENDIF:
            if open_block is None:
                raise TemplateSyntaxError("'endif' without open block", line_number)
            nodes.append(open_block)
            open_block = None
        else:
            raise TemplateSyntaxError(f"Unknown directive {body!r}", line_number)

    if open_block is not None:
        raise TemplateSyntaxError("Unclosed conditional block", open_block.line_number)

    return nodes


class TemplateRenderer:
    """Render templates for one environment.

    Example:
        >>> renderer = TemplateRenderer()
        >>> renderer.render("-- {{ENV}}", "dev", {"ENV": "dev"})
        '-- dev'
    """

    def __init__(self, strict: bool = False) -> None:
        """Initialize the renderer.

        Args:
            strict: Raise on tokens without a value instead of leaving them
        """
        self.strict = strict
        self.logger: StructuredLogger = get_logger(__name__)

    def resolve_conditionals(self, template_text: str, environment: str) -> str:
        """Return the text with conditional blocks resolved for ``environment``.

        Directive lines are dropped; lines outside blocks are kept as-is.
        """
        output: List[str] = []
        for node in parse_template(template_text):
            if isinstance(node, LiteralLine):
                output.append(node.text)
            elif node.matches(environment):
                output.extend(node.lines)
        return "".join(output)

    def substitute(
        self, text: str, variables: Mapping[str, str], name: str = "<template>"
    ) -> str:
        """Replace ``{{NAME}}`` tokens with their values in a single scan.

        Raises:
            TemplateRenderError: In strict mode, if a token has no value
        """
        unresolved: List[str] = []

        def _replace(match: "re.Match[str]") -> str:
            token = match.group(1)
            if token in variables:
                return str(variables[token])
            if token not in unresolved:
                unresolved.append(token)
            return match.group(0)

        rendered = _TOKEN_RE.sub(_replace, text)

        if unresolved:
            if self.strict:
                raise TemplateRenderError(
                    f"Unresolved template tokens: {', '.join(unresolved)}",
                    context={"template": name},
                )
            self.logger.warning(
                "Leaving unresolved template tokens verbatim: "
                f"{', '.join(unresolved)}",
                extra={"template": name, "unresolved": unresolved},
            )
        return rendered

    def render(
        self,
        template_text: str,
        environment: str,
        variables: Mapping[str, str],
        name: str = "<template>",
    ) -> str:
        """Render a template for ``environment``.

        Args:
            template_text: Raw template text
            environment: Environment identifier conditionals are evaluated against
            variables: Token values
            name: Template name used in log messages and errors

        Returns:
            Rendered document

        Raises:
            TemplateSyntaxError: If the conditional directives are malformed
            TemplateRenderError: In strict mode, if a token has no value
        """
        try:
            resolved = self.resolve_conditionals(template_text, environment)
        except TemplateSyntaxError as e:
            e.context.setdefault("template", name)
            e.args = (e._build_message(),)
            raise
        return self.substitute(resolved, variables, name=name)


def render(
    template_text: str,
    environment: str,
    variables: Mapping[str, str],
    strict: bool = False,
) -> str:
    """Render ``template_text`` for ``environment`` with ``variables``."""
    return TemplateRenderer(strict=strict).render(
        template_text, environment, variables
    )
