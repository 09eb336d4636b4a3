"""Checks lab handouts and the README index against the course format."""

import re
from pathlib import Path
from typing import List, Tuple, Union

from pydantic import BaseModel

from ..utils.logger import get_logger
from .document import LabDocument, parse_lab

logger = get_logger(__name__)

ERROR = "error"
WARNING = "warning"

# Canonical order of the named sections
REQUIRED_SECTIONS = [
    "Overview",
    "Learning Objectives",
    "Checkpoints",
    "Reflection Questions",
    "Submission Requirements",
]

LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)\s]+)(?:\s+\"[^\"]*\")?\)")


class LabIssue(BaseModel):
    path: str
    severity: str
    message: str

    def __str__(self) -> str:
        return f"{self.severity.upper()}: {self.path}: {self.message}"


def validate_lab(doc: LabDocument) -> List[LabIssue]:
    """
    Check one parsed lab against the handout structure.

    Args:
        doc: Parsed lab

    Returns:
        Issues found; empty when the lab is well formed.
    """
    path = doc.path or "<text>"
    issues: List[LabIssue] = []

    def add(severity: str, message: str) -> None:
        issues.append(LabIssue(path=path, severity=severity, message=message))

    if not doc.title:
        add(ERROR, "missing level-1 title")

    positions = []
    for name in REQUIRED_SECTIONS:
        heading = doc.find_section(name)
        if heading is None:
            # Inline checkpoint markers stand in for a Checkpoints section
            if name == "Checkpoints" and doc.checkpoints > 0:
                continue
            add(ERROR, f"missing section '{name}'")
        else:
            positions.append((heading.line, name))

    if not doc.parts:
        add(ERROR, "no numbered 'Part N' sections")
    elif doc.parts != list(range(1, len(doc.parts) + 1)):
        add(WARNING, f"parts are not numbered 1..{len(doc.parts)}: {doc.parts}")

    found_order = [name for _, name in sorted(positions)]
    expected_order = [name for name in REQUIRED_SECTIONS if name in found_order]
    if found_order != expected_order:
        add(WARNING, f"sections out of order: {', '.join(found_order)}")

    if doc.find_section("Reflection Questions") is not None and doc.reflection_questions == 0:
        add(WARNING, "Reflection Questions section lists no questions")

    return issues


def parse_index(readme: Union[str, Path]) -> List[Tuple[str, str]]:
    """
    Extract relative Markdown links from the README index.

    Args:
        readme: Path to README.md

    Returns:
        (link text, target without anchor) pairs for local .md files.
    """
    text = Path(readme).read_text(encoding="utf-8")
    links = []
    for label, target in LINK_RE.findall(text):
        if "://" in target or target.startswith(("#", "mailto:")):
            continue
        target = target.split("#", 1)[0]
        if target.lower().endswith(".md"):
            links.append((label, target))
    return links


def validate_index(readme: Union[str, Path], labs_dir: Union[str, Path]) -> List[LabIssue]:
    """
    Check that the README links resolve and every lab is listed.

    Args:
        readme: Path to README.md
        labs_dir: Directory holding the lab handouts

    Returns:
        Issues found.
    """
    readme = Path(readme)
    labs_dir = Path(labs_dir)
    issues: List[LabIssue] = []

    if not readme.is_file():
        return [LabIssue(path=str(readme), severity=ERROR, message="index file not found")]

    linked = set()
    for label, target in parse_index(readme):
        resolved = (readme.parent / target).resolve()
        linked.add(resolved)
        if not resolved.is_file():
            issues.append(LabIssue(
                path=str(readme), severity=ERROR, message=f"broken link '{label}' -> {target}"
            ))

    for lab_path in sorted(labs_dir.glob("*.md")):
        if lab_path.resolve() not in linked:
            issues.append(LabIssue(
                path=str(readme), severity=WARNING, message=f"lab {lab_path.name} is not listed in the index"
            ))

    return issues


def validate_course(readme: Union[str, Path], labs_dir: Union[str, Path]) -> List[LabIssue]:
    """
    Validate the index and every lab in the labs directory.

    Args:
        readme: Path to README.md
        labs_dir: Directory holding the lab handouts

    Returns:
        All issues, index issues first.
    """
    labs_dir = Path(labs_dir)
    issues = validate_index(readme, labs_dir)

    lab_paths = sorted(labs_dir.glob("*.md"))
    if not lab_paths:
        issues.append(LabIssue(path=str(labs_dir), severity=ERROR, message="no lab handouts found"))

    for lab_path in lab_paths:
        doc = parse_lab(lab_path)
        logger.debug(
            f"{lab_path.name}: {len(doc.parts)} part(s), {doc.checkpoints} checkpoint(s), "
            f"{doc.reflection_questions} reflection question(s)"
        )
        issues.extend(validate_lab(doc))

    return issues
