import re
from typing import Optional

from bs4 import BeautifulSoup

_WHITESPACE_RE = re.compile(r"\s+")


def html_to_text(html: Optional[str]) -> str:
    """
    Convert an HTML fragment to a single line of plain text.

    Script and style elements are dropped and runs of whitespace collapse to
    one space.
    """
    if not html:
        return ""

    soup = BeautifulSoup(html, "html.parser")
    for element in soup(["script", "style"]):
        element.decompose()

    text = soup.get_text(separator=" ")
    return _WHITESPACE_RE.sub(" ", text).strip()


def truncate_text(text: str, max_length: int) -> str:
    """Cut text to max_length characters, preferring a word boundary"""
    if len(text) <= max_length:
        return text

    cut = text[:max_length]
    space = cut.rfind(" ")
    if space > max_length * 0.6:
        cut = cut[:space]
    return cut.rstrip() + "…"


def first_image_url(html: Optional[str]) -> Optional[str]:
    """src of the first <img> in an HTML fragment, or None"""
    if not html:
        return None

    soup = BeautifulSoup(html, "html.parser")
    img = soup.find("img", src=True)
    if img is None:
        return None
    return img["src"].strip() or None
