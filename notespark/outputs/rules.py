"""
Rule tables for the rule-based text structurer.

Line classification (heading, list item, page marker), title extraction and
document-type detection are expressed as named tables of patterns so each
rule can be tested and replaced on its own.
"""

import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Pattern, Tuple

# Characters that mark a line as a mathematical expression
MATH_CHARS = re.compile(r"[=+\-×÷<>²³√∫∑]")
MERGE_BLOCKING_MATH_CHARS = re.compile(r"[=+\-×÷<>²³]")

HEADING_MIN_LENGTH = 5
HEADING_MAX_LENGTH = 60

HEADING_NOISE = re.compile(r"^(###|用|polige|italy|design|desio)$", re.IGNORECASE)
MATH_FUNCTION_LINE = re.compile(r"^[a-z]\.\s*(lim|sin|cos|tan|log)", re.IGNORECASE)
MATH_ARGUMENT_LINE = re.compile(r"^\([a-z0-9,]+\)")
SECTION_KEYWORD_PREFIX = re.compile(
    r"^(chapter|section|part|step|question|problem|solution|answer|"
    r"objective|introduction|conclusion|summary)\s+",
    re.IGNORECASE
)
NUMBERED_SECTION = re.compile(r"^\d+\.\s+[A-Z]")
ROMAN_SECTION = re.compile(r"^[IVX]+\.\s+[A-Z]")
INITIALS = re.compile(r"^[A-Z]\.\s")


def _word_count(line: str) -> int:
    return len(line.split())


def _is_all_caps_heading(line: str) -> bool:
    return (
        line == line.upper()
        and any(ch.isalpha() for ch in line)
        and 8 < len(line) < 50
        and 2 <= _word_count(line) <= 8
        and not INITIALS.match(line)
    )


def _is_colon_heading(line: str) -> bool:
    return line.endswith(":") and 5 < len(line) < 50 and _word_count(line) >= 2


def _is_keyword_heading(line: str) -> bool:
    return SECTION_KEYWORD_PREFIX.match(line) is not None


def _is_numbered_section(line: str) -> bool:
    return NUMBERED_SECTION.match(line) is not None and _word_count(line) >= 2


def _is_roman_section(line: str) -> bool:
    return ROMAN_SECTION.match(line) is not None


@dataclass(frozen=True)
class LineRule:
    name: str
    matches: Callable[[str], bool]


HEADING_RULES: List[LineRule] = [
    LineRule("all_caps", _is_all_caps_heading),
    LineRule("trailing_colon", _is_colon_heading),
    LineRule("section_keyword", _is_keyword_heading),
    LineRule("numbered_section", _is_numbered_section),
    LineRule("roman_section", _is_roman_section),
]

# Lines rejected before any heading rule runs
HEADING_EXCLUSIONS: List[Tuple[str, Pattern]] = [
    ("noise_token", HEADING_NOISE),
    ("math_expression", MATH_CHARS),
    ("math_function", MATH_FUNCTION_LINE),
    ("math_arguments", MATH_ARGUMENT_LINE),
]


def heading_rule_for(line: str) -> Optional[str]:
    """Name of the heading rule a line satisfies, or None."""
    line = line.strip()
    if not HEADING_MIN_LENGTH <= len(line) <= HEADING_MAX_LENGTH:
        return None
    for _, pattern in HEADING_EXCLUSIONS:
        if pattern.search(line):
            return None
    for rule in HEADING_RULES:
        if rule.matches(line):
            return rule.name
    return None


def is_heading(line: str) -> bool:
    return heading_rule_for(line) is not None


# (name, pattern, requires at least two words)
LIST_ITEM_RULES: List[Tuple[str, Pattern, bool]] = [
    ("bullet", re.compile(r"^[-*+•]\s+"), False),
    ("numbered", re.compile(r"^\d+[.)]\s+\w"), True),
    ("lettered", re.compile(r"^[a-zA-Z][.)]\s+\w"), True),
    ("roman", re.compile(r"^[ivx]+[.)]\s+\w", re.IGNORECASE), True),
]

LIST_PREFIXES: List[Pattern] = [
    re.compile(r"^[-*+•]\s*"),
    re.compile(r"^\d+[.)]\s*"),
    re.compile(r"^[a-zA-Z][.)]\s*"),
]


def is_list_item(line: str) -> bool:
    line = line.strip()
    for _, pattern, needs_words in LIST_ITEM_RULES:
        if pattern.match(line) and (not needs_words or _word_count(line) >= 2):
            return True
    return False


def clean_list_item(line: str) -> str:
    """Strip the bullet or enumeration prefix from a list item."""
    for pattern in LIST_PREFIXES:
        line = pattern.sub("", line, count=1)
    return line.strip()


PAGE_MARKER_RULES: List[Pattern] = [
    re.compile(r"^-+\s*page\s+\d+\s*-+$"),
    re.compile(r"^page\s+\d+$"),
]


def is_page_marker(line: str) -> bool:
    cleaned = line.strip().lower()
    return any(pattern.match(cleaned) for pattern in PAGE_MARKER_RULES)


# Paragraph continuation
CONTINUATION_MAX_LENGTH = 30
CONTINUATION_MAX_LINES = 1
STARTS_CAPITALIZED = re.compile(r"^[A-Z]")
NUMBERED_START = re.compile(r"^\d+[.)]\s")


def can_continue_paragraph(line: str) -> bool:
    """Whether a short following line may be merged into the previous paragraph."""
    return (
        0 < len(line) < CONTINUATION_MAX_LENGTH
        and not is_heading(line)
        and not is_list_item(line)
        and not is_page_marker(line)
        and not STARTS_CAPITALIZED.match(line)
        and "." not in line
        and not MERGE_BLOCKING_MATH_CHARS.search(line)
        and not NUMBERED_START.match(line)
    )


# Title extraction
TITLE_SCAN_LINES = 8
TITLE_MIN_LENGTH = 5
TITLE_MAX_LENGTH = 80

TITLE_NOISE_LINE = re.compile(
    r"^(###|用|\d{1,2}|date|day|time|page|dates|times|\d+/\d+/\d+|\d{1,2}:\d{2}|"
    r"polige|italy|desio|design)$",
    re.IGNORECASE
)
TITLE_BRAND_LINE = re.compile(
    r"^(polige\s+italy|italy\s+desio|design|brand|company|logo|watermark)\s*$",
    re.IGNORECASE
)
TITLE_BRAND_PREFIX = re.compile(r"^(polige|italy|desio|design|brand|company)", re.IGNORECASE)
ASSIGNMENT_TITLE = re.compile(r"assignment\s+(no\.?\s*)?(\d+|[a-z]+)", re.IGNORECASE)
EXERCISE_TITLE = re.compile(r"^(ex|exercise|problem|question)\s*#?\s*(\d+)", re.IGNORECASE)
SUBJECT_TITLE = re.compile(
    r"^(calculus|mathematics|physics|chemistry|biology|english|history)\s+",
    re.IGNORECASE
)
TITLE_CLEANUPS: List[Pattern] = [
    re.compile(r"^[-*•]\s*"),
    re.compile(r"^\d+[.)]\s*"),
    re.compile(r":\s*$"),
]


def _assignment_title(line: str) -> Optional[str]:
    match = ASSIGNMENT_TITLE.search(line)
    return f"Assignment {match.group(2)}" if match else None


def _exercise_title(line: str) -> Optional[str]:
    match = EXERCISE_TITLE.match(line)
    return f"{match.group(1)} {match.group(2)}" if match else None


def _subject_title(line: str) -> Optional[str]:
    return line if SUBJECT_TITLE.match(line) else None


def _generic_title(line: str) -> Optional[str]:
    if not 8 <= len(line) <= 60 or _word_count(line) < 2 or TITLE_BRAND_PREFIX.match(line):
        return None
    title = line
    for pattern in TITLE_CLEANUPS:
        title = pattern.sub("", title)
    title = title.strip()
    if len(title) >= TITLE_MIN_LENGTH and _word_count(title) >= 2:
        return title
    return None


# Tried in order on each candidate line
TITLE_LINE_RULES: List[Tuple[str, Callable[[str], Optional[str]]]] = [
    ("assignment", _assignment_title),
    ("exercise", _exercise_title),
    ("subject", _subject_title),
    ("generic", _generic_title),
]


def is_title_candidate(line: str) -> bool:
    return (
        TITLE_MIN_LENGTH <= len(line) <= TITLE_MAX_LENGTH
        and not TITLE_NOISE_LINE.match(line)
        and not TITLE_BRAND_LINE.match(line)
        and not line.isdigit()
        and _word_count(line) > 1
    )


def _fallback_assignment(text: str) -> Optional[str]:
    if not re.search(r"assignment|homework|exercise", text):
        return None
    match = re.search(r"assignment\s+(?:no\.?\s*)?(\d+|\w+)", text)
    return f"Assignment {match.group(1)}" if match else "Assignment"


def _fallback_study(text: str) -> Optional[str]:
    if not re.search(r"lecture|notes|study|course|chapter", text):
        return None
    match = re.search(r"chapter\s+(\d+|\w+)", text)
    return f"Chapter {match.group(1)} Notes" if match else "Study Notes"


def _keyword_title(pattern: str, title: str) -> Callable[[str], Optional[str]]:
    compiled = re.compile(pattern)
    return lambda text: title if compiled.search(text) else None


# Applied to the lower-cased full text when no line qualifies
FALLBACK_TITLE_RULES: List[Tuple[str, Callable[[str], Optional[str]]]] = [
    ("assignment", _fallback_assignment),
    ("study", _fallback_study),
    ("assessment", _keyword_title(r"quiz|test|exam", "Test/Quiz")),
    ("receipt", _keyword_title(r"receipt|invoice|bill", "Receipt")),
    ("meeting", _keyword_title(r"meeting|minutes", "Meeting Notes")),
]


DOCUMENT_TYPE_RULES: List[Tuple[str, Pattern]] = [
    ("receipt", re.compile(r"receipt|invoice|bill|payment|purchase")),
    ("form", re.compile(r"form|application|field|checkbox")),
    ("presentation", re.compile(r"slide|presentation|bullet|agenda")),
    ("academic", re.compile(r"lecture|notes|study|course|chapter")),
    ("meeting", re.compile(r"meeting|minutes|discussion|action")),
]

TABLE_INDICATORS: Tuple[str, ...] = ("|", "\t", "row", "column", "cell")


def detect_document_type(text: str) -> str:
    lowered = text.lower()
    for name, pattern in DOCUMENT_TYPE_RULES:
        if pattern.search(lowered):
            return name
    return "document"


def detect_tables(text: str) -> bool:
    lowered = text.lower()
    return any(indicator in lowered for indicator in TABLE_INDICATORS)
