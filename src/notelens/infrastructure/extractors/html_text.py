from __future__ import annotations

from html.parser import HTMLParser

_SKIPPED_TAGS = {"script", "style", "noscript", "template", "svg", "nav", "footer", "head"}
_BLOCK_TAGS = {
    "p",
    "div",
    "section",
    "article",
    "main",
    "li",
    "ul",
    "ol",
    "br",
    "tr",
    "table",
    "blockquote",
    "pre",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
}


class HTMLTextExtractor(HTMLParser):
    """Visible text of an HTML page, with block elements separated by blank lines.

    Also records ``<title>`` and the Open Graph ``og:title``/``og:site_name``
    meta tags.
    """

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.title = ""
        self.og_title = ""
        self.site_name = ""
        self._paragraphs: list[str] = []
        self._current: list[str] = []
        self._skip_depth = 0
        self._in_title = False
        self._title_parts: list[str] = []

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        normalized = tag.lower()
        if normalized == "title":
            self._in_title = True
            return
        if normalized == "meta":
            values = {k.lower(): (v or "") for k, v in attrs}
            prop = (values.get("property") or values.get("name") or "").lower()
            if prop == "og:site_name":
                self.site_name = values.get("content", "").strip()
            elif prop == "og:title":
                self.og_title = values.get("content", "").strip()
            return
        if normalized in _SKIPPED_TAGS:
            self._skip_depth += 1
            return
        if normalized in _BLOCK_TAGS:
            self._flush()

    def handle_endtag(self, tag: str) -> None:
        normalized = tag.lower()
        if normalized == "title":
            self._in_title = False
            self.title = " ".join("".join(self._title_parts).split())
            return
        if normalized in _SKIPPED_TAGS:
            self._skip_depth = max(0, self._skip_depth - 1)
            return
        if normalized in _BLOCK_TAGS:
            self._flush()

    def handle_data(self, data: str) -> None:
        if self._in_title:
            self._title_parts.append(data)
            return
        if self._skip_depth:
            return
        text = " ".join(data.split())
        if text:
            self._current.append(text)

    def _flush(self) -> None:
        if self._current:
            self._paragraphs.append(" ".join(self._current))
            self._current = []

    def text(self) -> str:
        self._flush()
        return "\n\n".join(self._paragraphs)


def html_to_text(markup: str) -> str:
    parser = HTMLTextExtractor()
    parser.feed(markup)
    parser.close()
    return parser.text()
