"""
Lab handout format.

Every lab follows the same outline: Overview, Learning Objectives,
numbered Parts, Checkpoints, Reflection Questions, Submission Requirements.
"""

from .document import LabDocument, Heading, parse_lab, parse_lab_text
from .validator import LabIssue, validate_lab, validate_index, validate_course, parse_index

__all__ = [
    "LabDocument",
    "Heading",
    "parse_lab",
    "parse_lab_text",
    "LabIssue",
    "validate_lab",
    "validate_index",
    "validate_course",
    "parse_index",
]
