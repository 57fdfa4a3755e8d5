"""Dimm City inline syntax: district badges and roll prompts."""

from __future__ import annotations

from typing import Any

from folio.plugins.pipeline import InlineState, Pipeline, Token, escape_html

DEFAULT_OPTIONS: dict[str, bool] = {
    "district_badges": True,
    "roll_prompts": True,
}

DISTRICTS: dict[str, str] = {
    "TechD": "Tech District",
    "EntD": "Entertainment District",
    "CommD": "Commercial District",
    "MarketD": "Market District",
    "ArcD": "Archive District",
    "Dark": "The Dark",
    "TheDark": "The Dark",
}

ROLL_PHRASES = ("ROLL A DIE!", "ROLL THE DIE", "ROLL A DIE")


def parse_district_badge(state: InlineState, silent: bool) -> bool:
    """Parse ``#TechD`` style badges at a word boundary."""
    start = state.pos
    src = state.src
    if src[start] != "#":
        return False
    if start > 0 and not src[start - 1].isspace():
        return False

    for code, name in DISTRICTS.items():
        end = start + 1 + len(code)
        if src.startswith(code, start + 1) and (
            end >= state.pos_max or not (src[end].isalnum() or src[end] == "_")
        ):
            if not silent:
                token = state.push("district_badge", "span")
                token.content = code
                token.meta = {"name": name}
            state.pos = end
            return True

    return False


def render_district_badge(tokens: list[Token], idx: int) -> str:
    code = tokens[idx].content
    name = escape_html(tokens[idx].meta["name"])
    return f'<span class="district-badge district-{code.lower()}" title="{name}">{code}</span>'


def parse_roll_prompt(state: InlineState, silent: bool) -> bool:
    for phrase in ROLL_PHRASES:
        if state.src.startswith(phrase, state.pos):
            if not silent:
                token = state.push("roll_prompt", "span")
                token.content = phrase
            state.pos += len(phrase)
            return True
    return False


def render_roll_prompt(tokens: list[Token], idx: int) -> str:
    return (
        '<span class="roll-prompt" title="Time to roll!"><span class="roll-icon">🎲</span>'
        f'<span class="roll-text">{escape_html(tokens[idx].content)}</span></span>'
    )


def dimm_city_plugin(pipeline: Pipeline, options: dict[str, Any] | None = None) -> None:
    """Register the Dimm City inline rules before ``emphasis``."""
    config = {**DEFAULT_OPTIONS, **(options or {})}

    if config.get("district_badges"):
        pipeline.inline.before("emphasis", "district_badge", parse_district_badge)
        pipeline.renderer.set_rule("district_badge", render_district_badge)

    if config.get("roll_prompts"):
        pipeline.inline.before("emphasis", "roll_prompt", parse_roll_prompt)
        pipeline.renderer.set_rule("roll_prompt", render_roll_prompt)
