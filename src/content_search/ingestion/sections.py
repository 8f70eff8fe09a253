"""Heading detection for long, structured text (books, reports, manuals).

The detector walks the text line by line and tests each stripped line
against :data:`HEADING_RULES` in order.  The first rule that matches
closes the current section and opens a new one.  Adding a heading style
means appending a :class:`HeadingRule`; nothing else changes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

DEFAULT_SECTION_TITLE = "Document"

_NUMBER = r"(\d+|[ivxlcdm]+|one|two|three|four|five|six|seven|eight|nine|ten)"


@dataclass(frozen=True)
class Section:
    """A titled span of the source text.

    Attributes
    ----------
    title:
        Heading text, or ``"Document"`` for text outside any heading.
    content:
        The span with surrounding whitespace stripped.
    start_offset / end_offset:
        Raw span in the source text, ``[start_offset, end_offset)``.
    content_offset:
        Position of ``content[0]`` in the source text.
    """

    title: str
    content: str
    start_offset: int
    end_offset: int
    content_offset: int


def _markdown_title(match: re.Match[str], line: str) -> str:
    return match.group(2).strip()


def _keyword_title(match: re.Match[str], line: str) -> str:
    trailing = match.group(3)
    if trailing:
        return f"{match.group(1)} {match.group(2)}: {trailing}".strip()
    return line


def _raw_title(match: re.Match[str], line: str) -> str:
    return line


@dataclass(frozen=True)
class HeadingRule:
    """One heading style: a pattern over a stripped line plus a title builder."""

    name: str
    pattern: re.Pattern[str]
    build_title: Callable[[re.Match[str], str], str]

    def title_for(self, line: str) -> str | None:
        match = self.pattern.match(line)
        if match is None:
            return None
        return self.build_title(match, line)


# Priority order: the first matching rule wins for a line.
HEADING_RULES: tuple[HeadingRule, ...] = (
    HeadingRule("markdown", re.compile(r"^(#{1,6})\s+(.+)$"), _markdown_title),
    HeadingRule(
        "chapter",
        re.compile(rf"^(chapter|chapitre)\s+{_NUMBER}[:\s\-]*(.*)?$", re.IGNORECASE),
        _keyword_title,
    ),
    HeadingRule(
        "part",
        re.compile(rf"^(part)\s+{_NUMBER}[:\s\-]*(.*)?$", re.IGNORECASE),
        _keyword_title,
    ),
    HeadingRule(
        "section",
        re.compile(r"^(section)\s+([\d.]+)[:\s\-]*(.*)?$", re.IGNORECASE),
        _keyword_title,
    ),
    HeadingRule("numbered", re.compile(r"^(\d+(?:\.\d+)*)\s+([A-Z].*)$"), _raw_title),
    HeadingRule("all_caps", re.compile(r"^([A-Z][A-Z\s]{4,50})$"), _raw_title),
)


def heading_title(line: str, rules: tuple[HeadingRule, ...] = HEADING_RULES) -> str | None:
    """Return the section title if *line* is a heading, else ``None``."""
    stripped = line.strip()
    if not stripped:
        return None
    for rule in rules:
        title = rule.title_for(stripped)
        if title is not None:
            return title
    return None


def _make_section(text: str, title: str, start: int, end: int) -> Section | None:
    span = text[start:end]
    content = span.strip()
    if not content:
        return None
    leading = len(span) - len(span.lstrip())
    return Section(
        title=title,
        content=content,
        start_offset=start,
        end_offset=end,
        content_offset=start + leading,
    )


def detect_sections(text: str, rules: tuple[HeadingRule, ...] = HEADING_RULES) -> list[Section]:
    """Split *text* into titled sections using heading heuristics.

    Text before the first heading is kept as a ``"Document"`` section.
    When no heading is found the whole text is returned as a single
    ``"Document"`` section spanning ``[0, len(text))``.
    """
    sections: list[Section] = []
    current_title = DEFAULT_SECTION_TITLE
    current_start = 0
    line_start = 0

    for line in text.split("\n"):
        title = heading_title(line, rules)
        if title is not None:
            section = _make_section(text, current_title, current_start, line_start)
            if section is not None:
                sections.append(section)
            current_title, current_start = title, line_start
        line_start += len(line) + 1

    section = _make_section(text, current_title, current_start, len(text))
    if section is not None:
        sections.append(section)

    if not sections:
        sections.append(
            Section(
                title=DEFAULT_SECTION_TITLE,
                content=text.strip(),
                start_offset=0,
                end_offset=len(text),
                content_offset=len(text) - len(text.lstrip()),
            )
        )
    return sections
