"""
Shared grammar/render pipeline.

Transformation units extend the pipeline through two surfaces:

- ``pipeline.inline``: an ordered list of named grammar rules. New rules
  are inserted relative to an existing rule (``before``/``after``) or
  appended (``push``).
- ``pipeline.renderer``: render functions keyed by token type. Setting a
  rule for a type that already has one replaces it (last write wins).

The pipeline ships a minimal inline grammar (``escape`` and ``emphasis``)
so that units have anchors to insert against. Inline rules follow the
``(state, silent) -> bool`` convention: a rule that matches at
``state.pos`` pushes tokens (unless ``silent``), advances ``state.pos`` and
returns True.

Example:
    pipeline = Pipeline()
    pipeline.inline.before("emphasis", "stat_block", parse_stat_block)
    pipeline.renderer.set_rule("stat_block", render_stat_block)
    html = pipeline.render_inline("Goblin {HP:7 DMG:2}")
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

logger = logging.getLogger(__name__)

ESCAPABLE = "\\`*_{}[]()#+-.!:@~|<>"


def escape_html(text: str) -> str:
    """Escape text for inclusion in HTML content and attribute values."""
    return html.escape(text, quote=True)


@dataclass
class Token:
    """A unit of parsed inline content.

    Attributes:
        type: Token type; selects the render function.
        tag: HTML tag hint.
        content: Text content.
        markup: Source markup that produced the token.
        meta: Rule-specific data.
        attrs: HTML attributes.
    """

    type: str
    tag: str = ""
    content: str = ""
    markup: str = ""
    meta: dict[str, Any] = field(default_factory=dict)
    attrs: dict[str, str] = field(default_factory=dict)

    def attr_get(self, name: str) -> str | None:
        return self.attrs.get(name)

    def attr_set(self, name: str, value: str) -> None:
        self.attrs[name] = value


class InlineState:
    """Scanning state handed to inline rules.

    Attributes:
        src: Source text.
        pos: Current position.
        pos_max: End of the scanned range.
        tokens: Tokens produced so far.
        pending: Plain text not yet flushed into a text token.
    """

    def __init__(self, src: str, env: dict[str, Any] | None = None):
        self.src = src
        self.pos = 0
        self.pos_max = len(src)
        self.tokens: list[Token] = []
        self.pending = ""
        self.env = env if env is not None else {}

    def push(self, type: str, tag: str = "") -> Token:
        """Flush pending text and append a new token."""
        self.flush_pending()
        token = Token(type=type, tag=tag)
        self.tokens.append(token)
        return token

    def flush_pending(self) -> None:
        if self.pending:
            self.tokens.append(Token(type="text", content=self.pending))
            self.pending = ""


RuleFn = Callable[[InlineState, bool], bool]
RenderFn = Callable[[list[Token], int], str]


class RuleNotFoundError(KeyError):
    """Raised when an anchor rule does not exist."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Parser rule not found: {name}")


@dataclass
class Rule:
    """A named grammar rule."""

    name: str
    fn: RuleFn
    enabled: bool = True


class Ruler:
    """Ordered list of named rules with relative insertion.

    Insertion order is the execution order, so units that anchor to the
    same rule keep the order in which they were applied.
    """

    def __init__(self) -> None:
        self._rules: list[Rule] = []

    def _find(self, name: str) -> int:
        for idx, rule in enumerate(self._rules):
            if rule.name == name:
                return idx
        return -1

    def _index_of(self, name: str) -> int:
        idx = self._find(name)
        if idx == -1:
            raise RuleNotFoundError(name)
        return idx

    def _check_new(self, name: str) -> None:
        if self._find(name) != -1:
            raise ValueError(f"Parser rule already exists: {name}")

    def at(self, name: str, fn: RuleFn) -> None:
        """Replace the function of an existing rule."""
        self._rules[self._index_of(name)].fn = fn

    def before(self, anchor: str, name: str, fn: RuleFn) -> None:
        """Insert a rule immediately before *anchor*."""
        idx = self._index_of(anchor)
        self._check_new(name)
        self._rules.insert(idx, Rule(name, fn))

    def after(self, anchor: str, name: str, fn: RuleFn) -> None:
        """Insert a rule immediately after *anchor*."""
        idx = self._index_of(anchor)
        self._check_new(name)
        self._rules.insert(idx + 1, Rule(name, fn))

    def push(self, name: str, fn: RuleFn) -> None:
        """Append a rule at the end of the chain."""
        self._check_new(name)
        self._rules.append(Rule(name, fn))

    def enable(self, names: str | Iterable[str]) -> None:
        for name in [names] if isinstance(names, str) else names:
            self._rules[self._index_of(name)].enabled = True

    def disable(self, names: str | Iterable[str]) -> None:
        for name in [names] if isinstance(names, str) else names:
            self._rules[self._index_of(name)].enabled = False

    def names(self) -> list[str]:
        """All rule names in execution order, enabled or not."""
        return [rule.name for rule in self._rules]

    def get_rules(self) -> list[Rule]:
        """Enabled rules in execution order."""
        return [rule for rule in self._rules if rule.enabled]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self._find(name) != -1

    def __len__(self) -> int:
        return len(self._rules)


class Renderer:
    """Render functions keyed by token type.

    ``set_rule`` is last-write-wins: the most recently applied unit owns
    the rendering of a token type.
    """

    def __init__(self) -> None:
        self.rules: dict[str, RenderFn] = {}

    def set_rule(self, kind: str, fn: RenderFn) -> None:
        if kind in self.rules:
            logger.debug(f"Render rule for '{kind}' overridden")
        self.rules[kind] = fn

    def get_rule(self, kind: str) -> RenderFn | None:
        return self.rules.get(kind)

    def render(self, tokens: list[Token]) -> str:
        out = []
        for idx, token in enumerate(tokens):
            rule = self.rules.get(token.type)
            if rule is not None:
                out.append(rule(tokens, idx))
            else:
                out.append(escape_html(token.content))
        return "".join(out)


def _escape_rule(state: InlineState, silent: bool) -> bool:
    if state.src[state.pos] != "\\" or state.pos + 1 >= state.pos_max:
        return False
    char = state.src[state.pos + 1]
    if char not in ESCAPABLE:
        return False
    if not silent:
        state.pending += char
    state.pos += 2
    return True


def _emphasis_rule(state: InlineState, silent: bool) -> bool:
    marker = state.src[state.pos]
    if marker not in "*_":
        return False
    end = state.src.find(marker, state.pos + 1)
    if end == -1 or end == state.pos + 1:
        return False
    if not silent:
        token = state.push("emphasis", "em")
        token.markup = marker
        token.content = state.src[state.pos + 1:end]
    state.pos = end + 1
    return True


def _render_text(tokens: list[Token], idx: int) -> str:
    return escape_html(tokens[idx].content)


def _render_emphasis(tokens: list[Token], idx: int) -> str:
    return f"<em>{escape_html(tokens[idx].content)}</em>"


class Pipeline:
    """The grammar/render pipeline shared by all transformation units.

    Attributes:
        inline: Ordered inline grammar rules.
        renderer: Render functions by token type.

    Example:
        pipeline = Pipeline()
        for plugin in plugins:
            plugin.apply(pipeline)
        print(pipeline.render_inline("Roll 2d6+1"))
    """

    def __init__(self) -> None:
        self.inline = Ruler()
        self.inline.push("escape", _escape_rule)
        self.inline.push("emphasis", _emphasis_rule)

        self.renderer = Renderer()
        self.renderer.set_rule("text", _render_text)
        self.renderer.set_rule("emphasis", _render_emphasis)

    def use(self, unit: Callable[..., None], options: dict[str, Any] | None = None) -> Pipeline:
        """Apply a transformation unit and return the pipeline for chaining."""
        unit(self, dict(options or {}))
        return self

    def parse_inline(self, src: str, env: dict[str, Any] | None = None) -> list[Token]:
        """Scan *src* with the enabled inline rules."""
        state = InlineState(src, env)
        rules = self.inline.get_rules()

        while state.pos < state.pos_max:
            start = state.pos
            for rule in rules:
                if rule.fn(state, False):
                    if state.pos <= start:
                        raise RuntimeError(
                            f"Inline rule '{rule.name}' matched without consuming input"
                        )
                    break
            else:
                state.pending += state.src[state.pos]
                state.pos += 1

        state.flush_pending()
        return state.tokens

    def render_inline(self, src: str, env: dict[str, Any] | None = None) -> str:
        """Parse and render *src*."""
        return self.renderer.render(self.parse_inline(src, env))

    def __repr__(self) -> str:
        return (
            f"<Pipeline rules={len(self.inline)} "
            f"renderers={len(self.renderer.rules)}>"
        )
