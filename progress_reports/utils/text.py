"""Text utilities for sanitization and cleaning."""
import re
from typing import Optional


def sanitize_text(text) -> str:
    """Clean and normalize text for safe output.

    Preserves UTF-8 characters, newlines, and basic formatting while removing
    control characters that would otherwise end up as garbage glyphs in the PDF.

    Args:
        text: Input text to sanitize

    Returns:
        Cleaned text with UTF-8 support and preserved formatting

    Examples:
        >>> sanitize_text("José's score:   95%")
        "José's score: 95%"
        >>> sanitize_text(None)
        ''
    """
    if text is None:
        return ""

    text = str(text)

    # Remove control characters EXCEPT newlines (\n), carriage returns (\r), and tabs (\t)
    text = re.sub(r'[\x00-\x08\x0B-\x0C\x0E-\x1F\x7F-\x9F]', '', text)
    text = text.replace('\r\n', '\n').replace('\r', '\n')

    # Collapse multiple spaces (but NOT newlines) into single space
    text = re.sub(r'[ \t]+', ' ', text)

    # Collapse multiple consecutive newlines into max 2 (preserves paragraph breaks)
    text = re.sub(r'\n{3,}', '\n\n', text)

    lines = [line.strip() for line in text.split('\n')]
    return '\n'.join(lines).strip()


def sanitize_filename_part(value: Optional[str], fallback: str = "student") -> str:
    """Make an identity string safe for use inside a file name.

    Examples:
        >>> sanitize_filename_part("ana.lopez@school.edu")
        'ana.lopez@school.edu'
        >>> sanitize_filename_part("Ana López / 4B")
        'Ana_L_pez_4B'
    """
    cleaned = re.sub(r'[^A-Za-z0-9@._-]+', '_', sanitize_text(value))
    cleaned = cleaned.strip('._')
    return cleaned or fallback


def format_percent(value: Optional[float]) -> str:
    """Format a score as a whole percentage, dash if missing."""
    if value is None:
        return "-"
    return f"{value}%"


def format_change(change: float) -> str:
    """Signed one-decimal trend delta, e.g. ``+8.5`` or ``-3.0``."""
    return f"{change:+.1f}"
