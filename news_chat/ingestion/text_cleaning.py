"""
Markup cleaning for feed item fields.
"""

import re

from bs4 import BeautifulSoup

# Elements whose text never belongs to the article body
NOISE_SELECTORS = 'script, style, nav, footer, header, .advertisement'


def clean_html(html: str) -> str:
    """
    Strip markup from an HTML fragment and normalize whitespace.

    Args:
        html: Raw HTML (or plain text)

    Returns:
        Plain text on a single line, stripped
    """
    if not html:
        return ""

    soup = BeautifulSoup(html, 'html.parser')
    for element in soup.select(NOISE_SELECTORS):
        element.decompose()

    text = soup.get_text(separator=' ')
    return re.sub(r'\s+', ' ', text).strip()


def truncate(text: str, limit: int, suffix: str = '...') -> str:
    """Cut text to at most limit characters, ending in suffix when something was cut."""
    if len(text) <= limit:
        return text
    return text[:max(limit - len(suffix), 0)] + suffix
