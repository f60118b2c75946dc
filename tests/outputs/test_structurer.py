"""
Tests for rule-based structuring and composed-note parsing.
"""

import pytest

from notespark.extraction.models import Tone
from notespark.outputs import rules
from notespark.outputs.structurer import TextStructurer, parse_composed_note


@pytest.fixture
def structurer():
    return TextStructurer()


class TestLineRules:
    """Test line classification tables."""

    @pytest.mark.parametrize("line", [
        "SUMMARY OF KEY IDEAS",
        "Key definitions:",
        "Chapter 4 review",
        "1. Introduction to cells",
        "IV. Results",
    ])
    def test_headings(self, line):
        """Test each heading rule."""
        assert rules.is_heading(line)

    @pytest.mark.parametrize("line", [
        "x = y + 2",
        "1. apples and pears",
        "A. B",
        "12345",
        "a. lim x",
    ])
    def test_not_headings(self, line):
        """Test math, lowercase list items and short lines are not headings."""
        assert not rules.is_heading(line)

    @pytest.mark.parametrize("line", ["- milk", "• eggs", "1. apples and pears", "b) second option"])
    def test_list_items(self, line):
        """Test bullet and enumerated list items."""
        assert rules.is_list_item(line)

    def test_clean_list_item(self):
        """Test prefixes are stripped."""
        assert rules.clean_list_item("- milk") == "milk"
        assert rules.clean_list_item("2) bread") == "bread"

    def test_page_markers(self):
        """Test page marker forms."""
        assert rules.is_page_marker("--- PAGE 3 ---")
        assert rules.is_page_marker("Page 12")
        assert not rules.is_page_marker("Page twelve of the notes")

    def test_detect_document_type(self):
        """Test document type keywords."""
        assert rules.detect_document_type("Invoice #42") == "receipt"
        assert rules.detect_document_type("Lecture on optics") == "academic"
        assert rules.detect_document_type("hello there") == "document"

    def test_detect_tables(self):
        """Test table indicators."""
        assert rules.detect_tables("a | b | c")
        assert not rules.detect_tables("plain prose")


class TestTextStructurer:
    """Test raw text to structured note conversion."""

    def test_structure(self, structurer):
        """Test title, paragraphs, lists and headings."""
        text = (
            "Chapter 5 Photosynthesis\n"
            "Light reactions occur in the thylakoid.\n"
            "- Chlorophyll absorbs light\n"
            "- Water is split\n"
            "SUMMARY OF KEY IDEAS\n"
            "Glucose is produced."
        )

        note = structurer.structure(text, Tone.PROFESSIONAL)

        assert note.title == "Chapter 5 Photosynthesis"
        assert note.body.startswith("<h1>Chapter 5 Photosynthesis</h1>")
        assert note.body.count("Chapter 5 Photosynthesis") == 1
        assert "<p>Light reactions occur in the thylakoid.</p>" in note.body
        assert "<li>Chlorophyll absorbs light</li>" in note.body
        assert "<li>Water is split</li>" in note.body
        assert note.body.count("<ul>") == 1
        assert note.body.count("</ul>") == 1
        assert "<h2>SUMMARY OF KEY IDEAS</h2>" in note.body
        assert "<p>Glucose is produced.</p>" in note.body

    def test_html_escaped(self, structurer):
        """Test raw text cannot inject markup."""
        note = structurer.structure("Lab results\nValue a < b & c > d")
        assert "<p>Value a &lt; b &amp; c &gt; d</p>" in note.body

    def test_short_continuation_merged(self, structurer):
        """Test one short lowercase line joins the previous paragraph."""
        note = structurer.structure("Biology Notes\nThe mitochondria is the\npowerhouse of cell")
        assert "<p>The mitochondria is the powerhouse of cell</p>" in note.body

    def test_page_markers_dropped(self, structurer):
        """Test page markers never reach the title or body."""
        text = "--- PAGE 1 ---\nHistory of Rome\nThe republic fell.\n\n--- PAGE 2 ---\nThe empire rose."
        note = structurer.structure(text)
        assert note.title == "History of Rome"
        assert note.body.count("History of Rome") == 1
        assert "PAGE" not in note.body

    def test_assignment_title(self, structurer):
        """Test assignment numbering is normalised."""
        assert structurer.structure("Assignment No. 3 - Physics\nSolve all.").title == "Assignment 3"

    @pytest.mark.parametrize("text", ["", "12\n3", "ok"])
    def test_title_never_empty(self, structurer, text):
        """Test a fallback title is always produced."""
        note = structurer.structure(text)
        assert note.title
        assert note.body.startswith("<h1>")

    def test_fallback_title_from_keywords(self, structurer):
        """Test keyword fallback when no line qualifies."""
        assert structurer.structure("quiz\n12").title == "Test/Quiz"

    def test_keyword_title_keeps_first_line(self, structurer):
        """Test a long first line survives when the title comes from keywords."""
        line = (
            "The study notes below cover photosynthesis and the Calvin cycle "
            "in considerable depth today."
        )
        note = structurer.structure(line)
        assert note.title == "Study Notes"
        assert f"<p>{line}</p>" in note.body

    def test_title_line_located(self, structurer):
        """Test the title reports the line it was taken from."""
        lines = ["Date", "History of Rome", "The republic fell."]
        assert structurer.locate_title(lines) == ("History of Rome", 1)
        assert structurer.locate_title(["quiz", "12"]) == ("Test/Quiz", None)

    def test_title_line_dropped_after_noise(self, structurer):
        """Test the title line is removed even when it is not the first line."""
        note = structurer.structure("Date\nHistory of Rome\nThe republic fell.")
        assert note.body.count("History of Rome") == 1
        assert "Date" in note.body

    def test_tone_does_not_change_rules(self, structurer):
        """Test rule-based output is tone independent."""
        text = "Chemistry basics\nAtoms bond."
        assert structurer.structure(text, Tone.CASUAL) == structurer.structure(text, Tone.SIMPLIFIED)


class TestParseComposedNote:
    """Test provider markup parsing."""

    def test_title_from_h1(self):
        """Test the h1 becomes the title and fences are stripped."""
        note = parse_composed_note("```html\n<h1>Cell &amp; Biology</h1>\n<p>Body</p>\n```")
        assert note.title == "Cell & Biology"
        assert note.body == "<h1>Cell &amp; Biology</h1>\n<p>Body</p>"

    def test_plain_text_wrapped(self):
        """Test plain replies are wrapped and escaped."""
        note = parse_composed_note("Shopping List\nEggs & ham\nMilk")
        assert note.title == "Shopping List"
        assert note.body == "<h1>Shopping List</h1>\n\n<p>Eggs &amp; ham</p>\n\n<p>Milk</p>"

    def test_untitled(self):
        """Test markup without a title line."""
        note = parse_composed_note("<p>only a paragraph</p>")
        assert note.title == "Untitled Note"
        assert note.body == "<p>only a paragraph</p>"
