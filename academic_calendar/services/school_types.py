# academic_calendar/services/school_types.py - School-type rules for legacy class-level labels
"""
Enrollments created before classes carried a ``type`` only store a free-text
class-level label ("JSS 2", "Primary 4", "300L"). When a migration or a
notification is scoped to a school type, the label is matched against the rule
table below.

This is a compatibility shim for legacy data. New data should link the
enrollment to a Class (or ClassArm) whose type is set, which always wins over
the label.
"""
import enum
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional


class SchoolType(str, enum.Enum):
    PRIMARY = "PRIMARY"
    SECONDARY = "SECONDARY"
    TERTIARY = "TERTIARY"


@dataclass(frozen=True)
class LabelRule:
    description: str
    matches: Callable[[str], bool]


def _contains(token: str) -> Callable[[str], bool]:
    return lambda label: token in label


def _pattern(regex: str) -> Callable[[str], bool]:
    compiled = re.compile(regex)
    return lambda label: compiled.search(label) is not None


# Labels are upper-cased before matching
LABEL_RULES: Dict[SchoolType, List[LabelRule]] = {
    SchoolType.PRIMARY: [
        LabelRule("contains CLASS", _contains("CLASS")),
        LabelRule("contains PRIMARY", _contains("PRIMARY")),
        LabelRule("is P1..P6", _pattern(r"^P[1-6]$")),
    ],
    SchoolType.SECONDARY: [
        # Word-anchored so "CLASS 1" is not read as "SS"
        LabelRule("JSS/SS/SSS prefix", _pattern(r"\b(?:JSS|SSS|SS)")),
        LabelRule("contains SECONDARY", _contains("SECONDARY")),
    ],
    SchoolType.TERTIARY: [
        LabelRule("digits followed by L", _pattern(r"\d+L")),
        LabelRule("contains LEVEL", _contains("LEVEL")),
    ],
}


def label_matches(label: Optional[str], school_type: str) -> bool:
    """True if a class-level label belongs to school_type. Unknown types match everything."""
    try:
        rules = LABEL_RULES[SchoolType(school_type)]
    except ValueError:
        return True
    normalized = (label or "").strip().upper()
    return any(rule.matches(normalized) for rule in rules)


def infer_school_type(label: Optional[str]) -> Optional[SchoolType]:
    """First school type whose rules match the label, checked in enum order."""
    for school_type in SchoolType:
        if label_matches(label, school_type.value):
            return school_type
    return None


def belongs_to_school_type(class_type: Optional[str], class_level_label: Optional[str], school_type: Optional[str]) -> bool:
    """
    Scope filter shared by the migration sweep and the notification recipients.

    A linked class type decides on its own; only when it is missing do we fall
    back to the label rules.
    """
    if not school_type:
        return True
    if class_type:
        return class_type == school_type
    return label_matches(class_level_label, school_type)


def is_tertiary(school_type: Optional[str]) -> bool:
    return school_type == SchoolType.TERTIARY.value


__all__ = [
    "SchoolType",
    "LabelRule",
    "LABEL_RULES",
    "label_matches",
    "infer_school_type",
    "belongs_to_school_type",
    "is_tertiary",
]
