"""
Structural model of a lab handout.

A lab is a Markdown file with a level-1 title followed by the sections
Overview, Learning Objectives, numbered Parts, Checkpoints, Reflection
Questions and Submission Requirements.
"""

import re
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from ..exceptions import LabFormatError

HEADING_RE = re.compile(r"^(#{1,6})\s+(.*?)\s*#*\s*$")
FENCE_RE = re.compile(r"^\s*(`{3,}|~{3,})(.*)$")
PART_RE = re.compile(r"^part\s+(\d+)\b", re.IGNORECASE)
CHECKPOINT_HEADING_RE = re.compile(r"^checkpoint\b", re.IGNORECASE)
CHECKPOINT_LINE_RE = re.compile(
    r"^\s*(?:[-*>]\s*)*(?:\*\*|__)\s*(?:[^\w\s]+\s*)?checkpoint\b", re.IGNORECASE
)
LIST_ITEM_RE = re.compile(r"^\s*(?:\d+[.)]|[-*+])\s+\S")
STARTER_MARKER = "YOUR CODE HERE"


class Heading(BaseModel):
    level: int
    text: str
    line: int

    @property
    def normalized(self) -> str:
        return normalize_heading(self.text)


class LabDocument(BaseModel):
    """Parsed outline of one lab handout."""

    path: Optional[str] = None
    title: Optional[str] = None
    headings: List[Heading] = Field(default_factory=list)
    parts: List[int] = Field(default_factory=list)
    checkpoints: int = 0
    reflection_questions: int = 0
    has_starter_code: bool = False

    @property
    def sections(self) -> List[str]:
        """Heading texts below the title, in document order."""
        return [h.text for h in self.headings if h.level > 1]

    def find_section(self, name: str) -> Optional[Heading]:
        """First heading that is, or starts with, the given section name."""
        for heading in self.headings:
            if heading.level > 1 and heading_matches(heading.text, name):
                return heading
        return None


def normalize_heading(text: str) -> str:
    """Lowercase a heading and drop emoji, numbering and punctuation."""
    text = re.sub(r"[^\w\s]", " ", text.lower())
    text = re.sub(r"^\s*\d+\s+", "", text)
    return " ".join(text.split())


def heading_matches(text: str, name: str) -> bool:
    """
    Whether a heading names the given section.

    "Reflection Questions (optional)" matches "Reflection Questions";
    "Part 2: Overview of networking" does not match "Overview".
    """
    heading = normalize_heading(text)
    wanted = normalize_heading(name)
    return heading == wanted or heading.startswith(wanted + " ")


def parse_lab(path: Union[str, Path]) -> LabDocument:
    """
    Parse a lab handout from disk.

    Args:
        path: Path to the .md file

    Returns:
        LabDocument

    Raises:
        LabFormatError: If the file cannot be read.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise LabFormatError(f"Cannot read lab {path}: {e}") from e
    return parse_lab_text(text, path=str(path))


def parse_lab_text(text: str, path: Optional[str] = None) -> LabDocument:
    """Parse the Markdown text of a lab handout."""
    doc = LabDocument(path=path, has_starter_code=STARTER_MARKER in text)

    fence: Optional[str] = None
    reflection_level: Optional[int] = None

    for number, line in enumerate(text.splitlines(), start=1):
        match = FENCE_RE.match(line)
        if fence is None and match:
            fence = match.group(1)
            continue
        if fence is not None:
            # Closed only by the same character, at least as long, with no info string
            if (
                match
                and match.group(1)[0] == fence[0]
                and len(match.group(1)) >= len(fence)
                and not match.group(2).strip()
            ):
                fence = None
            continue

        match = HEADING_RE.match(line)
        if match:
            heading = Heading(level=len(match.group(1)), text=match.group(2).strip(), line=number)
            doc.headings.append(heading)

            if heading.level == 1 and doc.title is None:
                doc.title = heading.text

            # Closes any open Reflection Questions section
            if reflection_level is not None and heading.level <= reflection_level:
                reflection_level = None
            if heading_matches(heading.text, "Reflection Questions"):
                reflection_level = heading.level

            part = PART_RE.match(heading.normalized)
            if part:
                doc.parts.append(int(part.group(1)))
            if CHECKPOINT_HEADING_RE.match(heading.normalized):
                doc.checkpoints += 1
            continue

        if CHECKPOINT_LINE_RE.match(line):
            doc.checkpoints += 1
        if reflection_level is not None and LIST_ITEM_RE.match(line):
            doc.reflection_questions += 1

    return doc
