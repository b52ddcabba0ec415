"""Jira wiki markup to GitHub markdown conversion.

Conversion is delegated to jira2markdown. Two engines exist because content
written before the cutoff date should not notify people on GitHub: user
mentions in old content render as display names, newer content mentions the
mapped GitHub user.
"""

from __future__ import annotations

import logging
import re
from string import punctuation
from typing import TYPE_CHECKING

from jira2markdown import convert
from jira2markdown.elements import MarkupElements
from jira2markdown.markup.base import AbstractMarkup
from jira2markdown.markup.links import Mention
from pyparsing import (
    CaselessLiteral,
    Char,
    Combine,
    FollowedBy,
    Optional,
    ParserElement,
    ParseResults,
    PrecededBy,
    SkipTo,
    StringEnd,
    StringStart,
    Suppress,
    White,
    Word,
    alphanums,
)

if TYPE_CHECKING:
    import datetime as dt

    from .models import SourceUser

logger: logging.Logger = logging.getLogger(__name__)

# "@Override" and friends would otherwise notify GitHub users of that name
_ANNOTATION_PATTERN = re.compile(r"(?<![\w`@/.])@([A-Za-z][\w-]*)")
_CODE_FENCE = "```"


class UserMention(AbstractMarkup):
    """Renders ``[~user]`` using the replacement text prepared by the manager."""

    def action(self, tokens: ParseResults) -> str:
        replacement = self.usernames.get(tokens.accountid)
        return f"`[~{tokens.accountid}]`" if replacement is None else replacement

    @property
    def expr(self) -> ParserElement:
        mention = Combine(
            "["
            + Optional(
                SkipTo("|", fail_on="]") + Suppress("|"),
                default="",
            )
            + "~"
            + Optional(CaselessLiteral("accountid:"))
            + Word(alphanums + ":-_.").set_results_name("accountid")
            + "]",
        )
        return (
            (StringStart() | Optional(PrecededBy(White(), retreat=1), default=" "))
            + mention.set_parse_action(self.action)
            + (StringEnd() | Optional(FollowedBy(White() | Char(punctuation, exclude_chars="[") | mention), default=" "))
        )


def escape_annotations(text: str, allowed_mentions: set[str]) -> str:
    """Wrap ``@word`` in backticks unless it is an intended mention. Code blocks are left alone."""
    lines = text.split("\n")
    in_code_block = False
    for index, line in enumerate(lines):
        if line.lstrip().startswith(_CODE_FENCE):
            in_code_block = not in_code_block
            continue
        if in_code_block:
            continue
        lines[index] = _ANNOTATION_PATTERN.sub(
            lambda m: m.group(0) if m.group(1) in allowed_mentions else f"`{m.group(0)}`",
            line,
        )
    return "\n".join(lines)


class JiraMarkupEngine:
    """Converts Jira text with a fixed rendering of user mentions."""

    def __init__(self, mentions: dict[str, str] | None = None, allowed_mentions: set[str] | None = None) -> None:
        self.mentions: dict[str, str] = mentions or {}
        self.allowed_mentions: set[str] = allowed_mentions or set()
        self._elements = MarkupElements()
        self._elements.replace(Mention, UserMention)

    def convert(self, text: str) -> str:
        if not text:
            return ""
        converted = convert(text, elements=self._elements, usernames=self.mentions)
        return escape_annotations(converted, self.allowed_mentions)

    def link(self, label: str, url: str) -> str:
        if not url:
            return label
        return f"[{label}]({url})"


class JiraMarkupManager:
    """Chooses the markup engine by the creation time of the content."""

    def __init__(self, user_mappings: dict[str, str] | None = None, cutoff: dt.datetime | None = None) -> None:
        self.user_mappings: dict[str, str] = dict(user_mappings or {})
        self.cutoff: dt.datetime | None = cutoff
        self._legacy_engine = JiraMarkupEngine()
        self._engine = self._build_engine({})

    def configure_user_lookup(self, users: dict[str, SourceUser]) -> None:
        """Render mentions of known Jira users by name instead of by raw key."""
        display_names = {key: f"**{user.display_name}**" for key, user in users.items()}
        self._legacy_engine = JiraMarkupEngine(display_names)
        self._engine = self._build_engine(display_names)
        logger.debug(f"Configured markup user lookup with {len(users)} users")

    def _build_engine(self, display_names: dict[str, str]) -> JiraMarkupEngine:
        mentions = dict(display_names)
        mentions.update({key: f"@{login}" for key, login in self.user_mappings.items()})
        return JiraMarkupEngine(mentions, set(self.user_mappings.values()))

    def engine(self, reference_timestamp: dt.datetime | None) -> JiraMarkupEngine:
        if self.cutoff is not None and reference_timestamp is not None and _before(reference_timestamp, self.cutoff):
            return self._legacy_engine
        return self._engine


def _before(timestamp: dt.datetime, cutoff: dt.datetime) -> bool:
    # Compare naive and aware values as if both were in the same zone
    if (timestamp.tzinfo is None) != (cutoff.tzinfo is None):
        timestamp = timestamp.replace(tzinfo=None)
        cutoff = cutoff.replace(tzinfo=None)
    return timestamp < cutoff
