"""
Text structuring.

Two independent paths produce a StructuredNote (title + markup body):

- TextStructurer: deterministic line classification of raw OCR text into
  headings, list items and paragraphs. No network cost.
- parse_composed_note: light cleanup of markup composed by the multimodal
  provider, extracting its title.

Both always yield a non-empty title. Raw text is HTML-escaped before it is
embedded in markup.
"""

import html
import logging
import re
from typing import List, Optional, Tuple

from ..extraction.models import StructuredNote, Tone
from . import rules

logger = logging.getLogger(__name__)

DEFAULT_COMPOSED_TITLE = "Untitled Note"
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
TITLE_SIMILARITY_RATIO = 0.7


def escape_html(text: str) -> str:
    """Escape & < > " ' for embedding in markup."""
    return html.escape(text, quote=True)


def normalize_lines(text: str) -> List[str]:
    """Normalize line endings and whitespace; drop empty lines."""
    text = CONTROL_CHARS.sub("", text.strip())
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n\s*\n\s*\n", "\n\n", text)
    return [line.strip() for line in text.split("\n") if line.strip()]


def _alnum_words(text: str) -> List[str]:
    return re.sub(r"[^a-z0-9\s]", "", text.lower()).split()


def is_similar_to_title(line: str, title: str) -> bool:
    """Whether a line repeats the title closely enough to be skipped."""
    if rules.TITLE_BRAND_PREFIX.match(title):
        return _alnum_words(line) == _alnum_words(title)

    title_words = [word for word in _alnum_words(title) if len(word) > 2]
    if not title_words:
        return False
    line_words = _alnum_words(line)

    matching = [
        word for word in title_words
        if any(word in line_word or line_word in word for line_word in line_words)
    ]
    return len(matching) >= len(title_words) * TITLE_SIMILARITY_RATIO


class TextStructurer:
    """Rule-based converter from raw extracted text to structured markup."""

    def structure(self, text: str, tone: Tone = Tone.PROFESSIONAL) -> StructuredNote:
        """
        Convert raw text into a titled HTML note.

        Tone does not change the rule-based output; it is accepted so both
        structuring paths share a signature.

        Args:
            text: Raw OCR text, possibly with page markers
            tone: Requested tone

        Returns:
            StructuredNote with a non-empty title
        """
        lines = normalize_lines(text)
        title, title_index = self.locate_title(lines)

        parts = [f"<h1>{escape_html(title)}</h1>\n\n"]
        in_list = False
        index = 0

        while index < len(lines):
            line = lines[index]

            if rules.is_page_marker(line):
                index += 1
                continue

            # only the line the title was taken from is dropped
            if index == title_index and is_similar_to_title(line, title):
                index += 1
                continue

            if rules.is_heading(line):
                if in_list:
                    parts.append("</ul>\n\n")
                    in_list = False
                heading = re.sub(r":\s*$", "", line)
                parts.append(f"<h2>{escape_html(heading)}</h2>\n\n")
                index += 1
                continue

            if rules.is_list_item(line):
                if not in_list:
                    parts.append("<ul>\n")
                    in_list = True
                parts.append(f"  <li>{escape_html(rules.clean_list_item(line))}</li>\n")
                index += 1
                continue

            if in_list:
                parts.append("</ul>\n\n")
                in_list = False

            paragraph = line
            merged = 0
            next_index = index + 1
            while (
                next_index < len(lines)
                and merged < rules.CONTINUATION_MAX_LINES
                and rules.can_continue_paragraph(lines[next_index])
            ):
                paragraph += " " + lines[next_index]
                merged += 1
                next_index += 1

            parts.append(f"<p>{escape_html(paragraph)}</p>\n\n")
            index = next_index

        if in_list:
            parts.append("</ul>\n\n")

        return StructuredNote(title=title, body="".join(parts).strip())

    def locate_title(self, lines: List[str]) -> Tuple[str, Optional[int]]:
        """
        First qualifying line among the leading lines, else a generic title.

        Returns:
            The title and the index of the line it came from, or None when
            it was derived from keywords or the document type
        """
        for index, line in enumerate(lines[:rules.TITLE_SCAN_LINES]):
            candidate = line.strip()
            if rules.is_page_marker(candidate) or not rules.is_title_candidate(candidate):
                continue
            for _, rule in rules.TITLE_LINE_RULES:
                title = rule(candidate)
                if title:
                    return title, index

        all_text = " ".join(lines).lower()
        for _, rule in rules.FALLBACK_TITLE_RULES:
            title = rule(all_text)
            if title:
                return title, None

        document_type = rules.detect_document_type(all_text)
        return ("Document" if document_type == "document" else document_type.capitalize()), None


def clean_response_text(response_text: str) -> str:
    """Remove code fences and stray bold markers from provider output."""
    cleaned = re.sub(r"```html\s*", "", response_text, flags=re.IGNORECASE)
    cleaned = re.sub(r"```\s*", "", cleaned)
    cleaned = re.sub(r"^\*\*|\*\*$", "", cleaned, flags=re.MULTILINE)
    cleaned = re.sub(r"\n\s*\n\s*\n+", "\n\n", cleaned)
    return cleaned.strip()


def parse_composed_note(response_text: str) -> StructuredNote:
    """
    Extract title and body from provider-composed markup.

    The title comes from the first <h1>, else a short first line. Plain-text
    replies without any heading or paragraph tags are wrapped so the body is
    always markup.
    """
    cleaned = clean_response_text(response_text)

    title = ""
    match = re.search(r"<h1[^>]*>(.*?)</h1>", cleaned, flags=re.IGNORECASE | re.DOTALL)
    if match:
        title = html.unescape(re.sub(r"<[^>]+>", "", match.group(1))).strip()
    else:
        first_line = cleaned.split("\n", 1)[0].strip()
        if first_line and len(first_line) < 100 and "<" not in first_line:
            title = first_line.lstrip("# ").strip()

    title = title or DEFAULT_COMPOSED_TITLE

    if not re.search(r"<h1|<p", cleaned, flags=re.IGNORECASE):
        lines = [line.strip() for line in cleaned.split("\n") if line.strip()]
        body_lines = lines[1:] if lines and lines[0].lstrip("# ").strip() == title else lines
        body = f"<h1>{escape_html(title)}</h1>\n\n" + "\n\n".join(
            f"<p>{escape_html(line)}</p>" for line in body_lines
        )
        return StructuredNote(title=title, body=body.strip())

    return StructuredNote(title=title, body=cleaned)
