"""Plain-text extraction from rich-text blog content.

Blog bodies are stored as HTML produced by the editor. Before embedding we
drop every tag, the contents of script/style and media elements, and collapse
whitespace.
"""
import html
import re
from html.parser import HTMLParser
from typing import List, Optional
import structlog

logger = structlog.get_logger()

# Elements whose content is never part of the readable text
SKIPPED_TAGS = frozenset({
    "script", "style", "noscript", "template",
    "img", "video", "iframe", "audio", "source",
    "object", "svg", "canvas",
})

# Elements that end a run of text (so "<p>a</p><p>b</p>" becomes "a b")
BLOCK_TAGS = frozenset({
    "p", "div", "br", "li", "ul", "ol", "tr", "td", "th", "table",
    "h1", "h2", "h3", "h4", "h5", "h6", "blockquote", "pre",
    "section", "article", "header", "footer", "hr", "figcaption",
})

# Void elements never get an end tag, so they are never pushed on the open stack
VOID_TAGS = frozenset({"img", "source", "br", "hr", "input", "meta", "link", "wbr", "embed"})

TAG_PATTERN = re.compile(r"<[^>]*>")
WHITESPACE_PATTERN = re.compile(r"\s+")


class _TextCollector(HTMLParser):
    """Collects text outside skipped elements.

    Open elements are tracked on a stack so an end tag also closes whatever
    was left open inside it, like a browser does. A skipped element that is
    never closed therefore ends with its enclosing element.
    """

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self._parts: List[str] = []
        self._open: List[str] = []
        self._skip_from: Optional[int] = None

    @property
    def skipping(self) -> bool:
        return self._skip_from is not None

    def handle_starttag(self, tag, attrs):
        if tag in BLOCK_TAGS and not self.skipping:
            self._parts.append(" ")
        if tag in VOID_TAGS:
            return
        if tag in SKIPPED_TAGS and not self.skipping:
            self._skip_from = len(self._open)
        self._open.append(tag)

    def handle_startendtag(self, tag, attrs):
        if tag in BLOCK_TAGS and not self.skipping:
            self._parts.append(" ")

    def handle_endtag(self, tag):
        if tag not in self._open:
            # Stray end tag
            return

        depth = len(self._open) - 1 - self._open[::-1].index(tag)
        del self._open[depth:]
        if self.skipping and depth <= self._skip_from:
            self._skip_from = None

        if tag in BLOCK_TAGS and not self.skipping:
            self._parts.append(" ")

    def handle_data(self, data):
        if not self.skipping:
            self._parts.append(data)

    def get_text(self) -> str:
        return "".join(self._parts)


def _collapse(text: str) -> str:
    return WHITESPACE_PATTERN.sub(" ", text).strip()


def strip_tags(content: str) -> str:
    """Regex tag strip used when the HTML parser gives up."""
    return _collapse(html.unescape(TAG_PATTERN.sub(" ", content)))


def clean_html(content: Optional[str]) -> str:
    """Return the readable plain text of an HTML fragment.

    Args:
        content: HTML (or plain) text; None and "" are allowed

    Returns:
        Trimmed plain text, "" for empty input
    """
    if not content:
        return ""

    parser = _TextCollector()
    try:
        parser.feed(content)
        parser.close()
    except Exception as e:
        logger.warning("html_parse_failed", error=str(e), content_length=len(content))
        return strip_tags(content)

    return _collapse(parser.get_text())


def excerpt(text: str, limit: int) -> str:
    """Truncate text to `limit` characters, appending '...' when cut."""
    if len(text) > limit:
        return text[:limit] + "..."
    return text
