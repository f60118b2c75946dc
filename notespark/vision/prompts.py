"""
Prompt builders for the multimodal provider.

Prompts are plain strings assembled from the request options and tone.
"""

from ..extraction.models import ExtractionOptions, Tone

PAGE_BREAK_MARKER = "--- PAGE BREAK ---"
REDUCED_EXTRACTION_PROMPT = "Extract all text from these images:"
MAX_FORMATTING_INPUT_CHARS = 5000
TRUNCATION_NOTICE = "\n[Text truncated...]"

TONE_INSTRUCTIONS = {
    Tone.PROFESSIONAL: "Use a formal, professional writing style with precise wording.",
    Tone.CASUAL: "Use a friendly, conversational writing style.",
    Tone.SIMPLIFIED: "Use simple language and short sentences that are easy to follow.",
}

FORMATTING_STYLES = {
    Tone.PROFESSIONAL: "formal style",
    Tone.CASUAL: "friendly style",
    Tone.SIMPLIFIED: "simple style",
}


def _option_bullets(options: ExtractionOptions) -> str:
    bullets = ["- Extract ALL visible text exactly as written"]
    if options.preserve_layout:
        bullets.append("- Preserve the original layout, line breaks and reading order")
    if options.extract_tables:
        bullets.append("- Reproduce tables using | separated columns")
    if options.enhance_handwriting:
        bullets.append("- Pay special attention to handwritten text and transcribe it carefully")
    return "\n".join(bullets)


def build_extraction_prompt(options: ExtractionOptions) -> str:
    """Plain text extraction for a single image."""
    return (
        "Extract all text from this image.\n\n"
        f"INSTRUCTIONS:\n{_option_bullets(options)}\n"
        "- Do not add commentary or explanations\n\n"
        "TEXT:"
    )


def build_multi_page_prompt(page_count: int, options: ExtractionOptions) -> str:
    """Plain text extraction across several page images in one request."""
    prompt = (
        f"Extract all text from these {page_count} document pages, in page order.\n\n"
        f"INSTRUCTIONS:\n{_option_bullets(options)}\n"
    )
    if options.preserve_page_breaks:
        prompt += f"- Separate pages with a line containing exactly: {PAGE_BREAK_MARKER}\n"
    prompt += "- Do not add commentary or explanations\n\nTEXT:"
    return prompt


def build_note_generation_prompt(page_count: int, tone: Tone, options: ExtractionOptions) -> str:
    """Ask the provider to compose a structured HTML note directly."""
    pages = "this image" if page_count == 1 else f"these {page_count} images"
    lines = [
        f"Create a well-organized study note from {pages}.",
        "",
        "TONE:",
        TONE_INSTRUCTIONS[tone],
        "",
        "FORMAT REQUIREMENTS:",
        "- Start with a single <h1> containing a concise, descriptive title",
        "- Use <h2> and <h3> for sections, <p> for paragraphs",
        "- Use <ul>/<ol> with <li> for lists, <strong> for key terms",
    ]
    if options.extract_tables:
        lines.append("- Use <table>, <tr>, <th>, <td> for tabular content")
    if options.preserve_layout:
        lines.append("- Keep the original ordering of the content")
    if page_count > 1 and options.preserve_page_breaks:
        lines.append("- Combine all pages into one coherent note")
    lines.extend([
        "- Return only the HTML, without code fences or commentary",
        "",
        "HTML:",
    ])
    return "\n".join(lines)


def truncate_for_prompt(text: str, max_chars: int = MAX_FORMATTING_INPUT_CHARS) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_NOTICE


def build_formatting_prompt(text: str, tone: Tone) -> str:
    """Text-only formatting of already extracted text."""
    return (
        f"Convert to clean HTML with {FORMATTING_STYLES[tone]}:\n\n"
        "Structure:\n"
        "- <h1> for title\n"
        "- <h2>/<h3> for sections\n"
        "- <p> for paragraphs\n"
        "- <ul>/<li> for lists\n"
        "- Fix text errors\n\n"
        f"Text:\n{truncate_for_prompt(text)}\n\n"
        "HTML:"
    )


def build_analysis_prompt() -> str:
    """JSON content analysis of a single image."""
    return (
        "Analyze this image and respond with JSON only, using this shape:\n"
        "{\n"
        '  "document_type": "receipt|form|presentation|handwritten|mixed|text",\n'
        '  "has_handwriting": true|false,\n'
        '  "has_tables": true|false,\n'
        '  "languages": ["en"],\n'
        '  "text_quality": "high|medium|low",\n'
        '  "recommended_method": "ocr|multimodal"\n'
        "}"
    )
