"""Neutralize unsafe fragments in every string of an extracted document."""

from __future__ import annotations

from collections.abc import Mapping
import dataclasses
import logging
import re
from typing import Any

from storyboard_director.core.types import (
    BasicStoryboard,
    StoryboardDocument,
)

log = logging.getLogger(__name__)

_MAX_PASSES = 5
_FLAGS = re.IGNORECASE | re.DOTALL


@dataclasses.dataclass(frozen=True, slots=True)
class SanitizeRule:
    """A named pattern whose matches are replaced (removed by default)."""

    name: str
    pattern: re.Pattern[str]
    replacement: str = ""


DEFAULT_RULES: tuple[SanitizeRule, ...] = (
    SanitizeRule(
        "script_block", re.compile(r"<\s*script\b[^>]*>.*?<\s*/\s*script\s*>", _FLAGS)
    ),
    SanitizeRule(
        "iframe_block", re.compile(r"<\s*iframe\b[^>]*>.*?<\s*/\s*iframe\s*>", _FLAGS)
    ),
    SanitizeRule(
        "style_block", re.compile(r"<\s*style\b[^>]*>.*?<\s*/\s*style\s*>", _FLAGS)
    ),
    SanitizeRule(
        "dangerous_tag",
        re.compile(r"<\s*/?\s*(?:script|iframe|style|object|embed|frame)\b[^>]*>?", _FLAGS),
    ),
    SanitizeRule(
        "event_handler",
        re.compile(r"""\bon[a-z]{3,}\s*=\s*(?:"[^"]*"|'[^']*'|[^\s>]*)""", _FLAGS),
    ),
    SanitizeRule(
        "protocol_handler", re.compile(r"\b(?:javascript|vbscript|livescript)\s*:", _FLAGS)
    ),
    SanitizeRule(
        "executable_data_uri",
        re.compile(
            r"data:\s*(?:text/html|text/javascript|application/(?:x-)?javascript"
            r"|application/x-sh|image/svg\+xml)[^\s\"'<>]*",
            _FLAGS,
        ),
    ),
    SanitizeRule(
        "sql_statement",
        re.compile(
            r";?\s*\b(?:drop|truncate)\s+(?:table|database|schema)\b"
            r"(?:\s+if\s+exists)?(?:\s+[\w.`\"]+)?(?:\s*;)?"
            r"|;\s*(?:delete\s+from|insert\s+into|alter\s+table|exec(?:ute)?)"
            r"(?:\s+[\w.`\"]+)?(?:\s*;)?"
            r"|;\s*update\s+[\w.`\"]+\s+set\b(?:\s*;)?",
            _FLAGS,
        ),
    ),
    SanitizeRule("sql_union", re.compile(r"\bunion\s+(?:all\s+)?select\b", _FLAGS)),
    SanitizeRule(
        "sql_tautology", re.compile(r"'\s*or\s+'?1'?\s*=\s*'?1'?", _FLAGS)
    ),
    SanitizeRule("backtick_substitution", re.compile(r"`[^`\n]*`")),
    SanitizeRule("dollar_substitution", re.compile(r"\$\([^)\n]*\)")),
)


class ContentSanitizer:
    """Strip script-like markup, protocol handlers, SQL and shell fragments.

    Rules run repeatedly until the text stops changing, so a removal cannot
    splice a new dangerous fragment together. Prose that matches no rule is
    returned unchanged.
    """

    def __init__(self, rules: tuple[SanitizeRule, ...] | None = None):
        self.rules = DEFAULT_RULES if rules is None else rules
        self.removals: dict[str, int] = {}

    def sanitize_text(self, text: str) -> str:
        current = text
        for _ in range(_MAX_PASSES):
            updated = current
            for rule in self.rules:
                updated, count = rule.pattern.subn(rule.replacement, updated)
                if count:
                    self.removals[rule.name] = self.removals.get(rule.name, 0) + count
            if updated == current:
                break
            current = updated
        if current != text:
            current = re.sub(r"[ \t]{2,}", " ", current).strip()
            log.warning("Sanitizer removed unsafe content (%d chars)", len(text) - len(current))
        return current

    def sanitize_json(self, doc: Any) -> Any:
        """Return a sanitized copy of any JSON-like value; input is not mutated."""
        if isinstance(doc, str):
            return self.sanitize_text(doc)
        if isinstance(doc, Mapping):
            return {key: self.sanitize_json(value) for key, value in doc.items()}
        if isinstance(doc, list | tuple):
            return [self.sanitize_json(item) for item in doc]
        return doc

    def sanitize_storyboard(
        self, doc: StoryboardDocument
    ) -> StoryboardDocument | None:
        """Sanitize every prompt; a prompt emptied by sanitization is dropped.

        Returns None when no prompt survives.
        """
        prompts = []
        for prompt in doc.prompts:
            text = self.sanitize_text(prompt.text)
            if not text:
                log.warning("Dropping prompt at %s: empty after sanitization", prompt.timestamp)
                continue
            prompts.append(
                dataclasses.replace(
                    prompt, text=text, mood=self.sanitize_text(prompt.mood)
                )
            )
        if not prompts:
            log.warning("No prompt text survived sanitization")
            return None
        if isinstance(doc, BasicStoryboard):
            return BasicStoryboard(tuple(prompts), doc.metadata)
        return StoryboardDocument(tuple(prompts))
