"""
Learning path parsing - turns the AI's free-text study plan into stages.

The plan text is cleaned of HTML and markdown, then split on explicit
stage markers, numbered sections or paragraphs, in that order. Only the
stages that could actually be found are returned; callers substitute a
default plan when fewer than three come back.
"""

import re
from typing import Dict, List, Optional, Tuple


STAGE_COUNT = 3
MAX_TITLE_LENGTH = 30
MAX_DESCRIPTION_LENGTH = 150

# (marker, default title, default duration, default description)
STAGE_MARKERS: List[Tuple[re.Pattern, str, str, str]] = [
    (
        re.compile(r"stage\s*(?:1|one)\b|first stage|foundation stage|第一阶段|基础准备阶段|基础阶段|准备阶段", re.I),
        "Foundation stage",
        "4 weeks",
        "Learn the fundamentals and core skills needed for the competition",
    ),
    (
        re.compile(r"stage\s*(?:2|two)\b|second stage|skill[- ]building stage|第二阶段|技能提升阶段|提升阶段|进阶阶段", re.I),
        "Skill-building stage",
        "6 weeks",
        "Deepen the relevant skills and build practical experience",
    ),
    (
        re.compile(r"stage\s*(?:3|three)\b|third stage|practice stage|第三阶段|实战演练阶段|实战阶段|演练阶段", re.I),
        "Practice stage",
        "2 weeks",
        "Train under competition conditions and close remaining gaps",
    ),
]

_DURATION_PATTERNS = [
    (re.compile(r"(\d+)\s*(?:weeks?\b|周)", re.I), "weeks"),
    (re.compile(r"(\d+)\s*(?:months?\b|个?月)", re.I), "months"),
    (re.compile(r"(\d+)\s*(?:days?\b|天)", re.I), "days"),
]

_TITLE_PATTERN = re.compile(r"^[^.。:：\n]+[.。:：]", re.M)
_NUMBERED_SPLIT = re.compile(r"(?=\d+\.\s+)")
_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")


def clean_plan_text(text: str) -> str:
    text = re.sub(r"<[^>]*>", "", text)
    text = re.sub(r"\*\*([^*]+)\*\*", r"\1", text)
    text = re.sub(r"\*([^*]+)\*", r"\1", text)
    text = re.sub(r"#{1,6}\s*", "", text)
    return text.strip()


def extract_duration(text: str) -> Optional[str]:
    """First "<n> weeks/months/days" found in the text, normalised to English"""
    for pattern, unit in _DURATION_PATTERNS:
        match = pattern.search(text)
        if match:
            return f"{match.group(1)} {unit}"
    return None


def _split_by_markers(text: str) -> List[Optional[str]]:
    positions = []
    for index, (marker, _, _, _) in enumerate(STAGE_MARKERS):
        match = marker.search(text)
        if match:
            positions.append((match.start(), index))

    sections: List[Optional[str]] = [None] * STAGE_COUNT
    if len(positions) < 2:
        return sections

    positions.sort()
    for i, (start, index) in enumerate(positions):
        end = positions[i + 1][0] if i + 1 < len(positions) else len(text)
        sections[index] = text[start:end].strip()
    return sections


def _split_by_numbers(text: str) -> List[Optional[str]]:
    parts = [part.strip() for part in _NUMBERED_SPLIT.split(text) if part.strip()]
    if len(parts) < STAGE_COUNT:
        return [None] * STAGE_COUNT
    return parts[:STAGE_COUNT]


def _split_by_paragraphs(text: str) -> List[Optional[str]]:
    paragraphs = [p.strip() for p in _PARAGRAPH_SPLIT.split(text) if p.strip()]
    if len(paragraphs) < STAGE_COUNT:
        return [None] * STAGE_COUNT

    per_stage = -(-len(paragraphs) // STAGE_COUNT)
    return [
        "\n\n".join(paragraphs[i * per_stage:(i + 1) * per_stage]) or None
        for i in range(STAGE_COUNT)
    ]


def _build_stage(content: str, index: int) -> Dict[str, str]:
    _, default_title, default_duration, default_description = STAGE_MARKERS[index]
    content = re.sub(r"^\d+\.\s+", "", content)

    title = default_title
    title_match = _TITLE_PATTERN.search(content)
    if title_match:
        extracted = title_match.group(0)[:-1].strip()
        if 0 < len(extracted) < MAX_TITLE_LENGTH:
            title = extracted

    description = _TITLE_PATTERN.sub("", content, count=1)
    description = re.sub(r"(?:estimated time|duration|预计时间|时间)\s*[:：].*", "", description, flags=re.I)
    description = re.sub(r"\d+\.\s*", "", description)
    description = re.sub(r"[-•]\s*", "", description).strip()
    if len(description) > MAX_DESCRIPTION_LENGTH:
        description = description[:MAX_DESCRIPTION_LENGTH - 3] + "..."

    return {
        "title": title[:MAX_TITLE_LENGTH],
        "description": description or default_description,
        "duration": extract_duration(content) or default_duration,
    }


def parse_learning_path(text: Optional[str]) -> List[Dict[str, str]]:
    """
    Parse an AI study plan into ``{"title", "description", "duration"}`` stages.

    Returns the stages found, in stage order; an empty list when the text
    has no recognisable structure.
    """
    if not text or not isinstance(text, str):
        return []

    cleaned = clean_plan_text(text)
    for split in (_split_by_markers, _split_by_numbers, _split_by_paragraphs):
        sections = split(cleaned)
        if any(sections):
            break

    return [
        _build_stage(section, index)
        for index, section in enumerate(sections)
        if section
    ]
