"""TTRPG inline syntax: stat blocks, dice, cross-references, callouts, challenge ratings."""

from __future__ import annotations

import re
from typing import Any

from folio.plugins.pipeline import InlineState, Pipeline, Token, escape_html

DEFAULT_OPTIONS: dict[str, bool] = {
    "stat_blocks": True,
    "dice_notation": True,
    "cross_references": True,
    "trait_callouts": True,
    "challenge_ratings": True,
}

_DICE_RE = re.compile(r"(\d+)d(\d+)([+-]\d+)?")
_TRAIT_RE = re.compile(r"::(trait|ability)\[([^\]]+)\]")
_CR_RE = re.compile(r"CR:(\d+)")
_WORD_RE = re.compile(r"\w")


def _is_word_char(state: InlineState, pos: int) -> bool:
    return 0 <= pos < state.pos_max and bool(_WORD_RE.match(state.src[pos]))


# {HP:12 DMG:3}

def parse_stat_block(state: InlineState, silent: bool) -> bool:
    start = state.pos
    if not state.src.startswith("{HP:", start):
        return False
    end = state.src.find("}", start + 4, state.pos_max)
    if end == -1:
        return False

    if not silent:
        token = state.push("stat_block", "span")
        token.markup = "{}"
        token.content = state.src[start + 1:end]

    state.pos = end + 1
    return True


def render_stat_block(tokens: list[Token], idx: int) -> str:
    items = []
    for part in tokens[idx].content.split():
        label, _, value = part.partition(":")
        if label and value:
            items.append(
                f'<span class="stat-item"><span class="stat-label">{escape_html(label)}</span>'
                f'<span class="stat-value">{escape_html(value)}</span></span>'
            )
    return f'<span class="stat-block">{"".join(items)}</span>'


# 1d6, 2d10+5, 3d8-2

def parse_dice_notation(state: InlineState, silent: bool) -> bool:
    start = state.pos
    match = _DICE_RE.match(state.src, start, state.pos_max)
    if not match:
        return False
    end = match.end()
    if _is_word_char(state, start - 1) or _is_word_char(state, end):
        return False

    if not silent:
        token = state.push("dice_notation", "span")
        token.content = match.group(0)
        token.meta = {
            "count": match.group(1),
            "sides": match.group(2),
            "modifier": match.group(3) or "",
        }

    state.pos = end
    return True


def render_dice_notation(tokens: list[Token], idx: int) -> str:
    formula = escape_html(tokens[idx].content)
    return (
        f'<span class="dice-notation" data-dice="{formula}" title="Roll {formula}">'
        f'<span class="dice-icon">🎲</span><span class="dice-formula">{formula}</span></span>'
    )


# @[NPC:investigator] or @[shadowkin]

def parse_cross_reference(state: InlineState, silent: bool) -> bool:
    start = state.pos
    if not state.src.startswith("@[", start):
        return False
    end = state.src.find("]", start + 2, state.pos_max)
    if end == -1:
        return False

    content = state.src[start + 2:end]
    ref_type, identifier = "ref", content
    parts = content.split(":")
    if len(parts) == 2:
        ref_type, identifier = parts[0].lower(), parts[1]

    if not silent:
        token = state.push("cross_reference", "a")
        token.attr_set("class", f"xref xref-{ref_type}")
        token.attr_set("data-ref-type", ref_type)
        token.attr_set("data-ref-id", identifier)
        token.content = identifier

    state.pos = end + 1
    return True


def render_cross_reference(tokens: list[Token], idx: int) -> str:
    token = tokens[idx]
    ref_type = escape_html(token.attr_get("data-ref-type") or "ref")
    ref_id = token.attr_get("data-ref-id") or ""
    class_name = escape_html(token.attr_get("class") or "")
    anchor = escape_html("-".join(ref_id.lower().split()))
    ref_id = escape_html(ref_id)
    return (
        f'<a href="#{ref_type}-{anchor}" class="{class_name}" data-ref-type="{ref_type}" '
        f'data-ref-id="{ref_id}" title="See {ref_type}: {ref_id}">{ref_id}</a>'
    )


# ::trait[Shadow Step] or ::ability[Umbral Strike]

def parse_trait_callout(state: InlineState, silent: bool) -> bool:
    match = _TRAIT_RE.match(state.src, state.pos, state.pos_max)
    if not match:
        return False

    if not silent:
        token = state.push("trait_callout", "span")
        token.markup = f"::{match.group(1)}"
        token.meta = {"type": match.group(1)}
        token.content = match.group(2)

    state.pos = match.end()
    return True


def render_trait_callout(tokens: list[Token], idx: int) -> str:
    kind = tokens[idx].meta["type"]
    icon = "⚡" if kind == "trait" else "💫"
    return (
        f'<span class="callout callout-{kind}"><span class="callout-icon">{icon}</span>'
        f'<span class="callout-content">{escape_html(tokens[idx].content)}</span></span>'
    )


# CR:3

def parse_challenge_rating(state: InlineState, silent: bool) -> bool:
    start = state.pos
    match = _CR_RE.match(state.src, start, state.pos_max)
    if not match or _is_word_char(state, start - 1):
        return False

    if not silent:
        token = state.push("challenge_rating", "span")
        token.content = match.group(1)

    state.pos = match.end()
    return True


def challenge_difficulty(rating: int) -> str:
    if rating <= 3:
        return "easy"
    if rating <= 7:
        return "medium"
    if rating <= 12:
        return "hard"
    return "deadly"


def render_challenge_rating(tokens: list[Token], idx: int) -> str:
    rating = tokens[idx].content
    difficulty = challenge_difficulty(int(rating))
    return (
        f'<span class="challenge-rating cr-{difficulty}" data-cr="{rating}">'
        f'<span class="cr-label">CR</span><span class="cr-value">{rating}</span></span>'
    )


_FEATURES = (
    ("stat_blocks", "stat_block", parse_stat_block, render_stat_block),
    ("dice_notation", "dice_notation", parse_dice_notation, render_dice_notation),
    ("cross_references", "cross_reference", parse_cross_reference, render_cross_reference),
    ("trait_callouts", "trait_callout", parse_trait_callout, render_trait_callout),
    ("challenge_ratings", "challenge_rating", parse_challenge_rating, render_challenge_rating),
)


def ttrpg_plugin(pipeline: Pipeline, options: dict[str, Any] | None = None) -> None:
    """Register the TTRPG inline rules before ``emphasis``."""
    config = {**DEFAULT_OPTIONS, **(options or {})}

    for option, name, parse, render in _FEATURES:
        if config.get(option):
            pipeline.inline.before("emphasis", name, parse)
            pipeline.renderer.set_rule(name, render)
