from __future__ import annotations

import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass

from notelens.core.config import read_float_env
from notelens.core.errors import ExternalContentError
from notelens.infrastructure.extractors.html_text import HTMLTextExtractor

MAX_PAGE_BYTES = 5 * 1024 * 1024
USER_AGENT = "Mozilla/5.0 (compatible; notelens/0.1)"


@dataclass(slots=True)
class WebContent:
    title: str
    site_name: str
    text_content: str


class WebContentFetcher:
    def __init__(self, *, timeout_seconds: float | None = None) -> None:
        self.timeout_seconds = (
            timeout_seconds
            if timeout_seconds is not None
            else read_float_env("NOTELENS_FETCH_TIMEOUT_SECONDS", 20.0)
        )

    def fetch(self, url: str) -> WebContent:
        parsed = urllib.parse.urlparse(url)
        if parsed.scheme not in {"http", "https"}:
            raise ExternalContentError(f"Only http(s) bookmarks can be fetched: {url}")
        request = urllib.request.Request(url, headers={"User-Agent": USER_AGENT, "Accept": "text/html,*/*"})
        try:
            with urllib.request.urlopen(request, timeout=self.timeout_seconds) as response:
                charset = response.headers.get_content_charset() or "utf-8"
                raw = response.read(MAX_PAGE_BYTES)
        except urllib.error.HTTPError as exc:
            raise ExternalContentError(f"Fetching {url} failed with status {exc.code}") from exc
        except (urllib.error.URLError, TimeoutError, OSError) as exc:
            raise ExternalContentError(f"Fetching {url} failed: {getattr(exc, 'reason', exc)}") from exc

        parser = HTMLTextExtractor()
        try:
            markup = raw.decode(charset, errors="replace")
        except LookupError:
            markup = raw.decode("utf-8", errors="replace")
        parser.feed(markup)
        parser.close()
        return WebContent(
            title=parser.og_title or parser.title or parsed.netloc,
            site_name=parser.site_name or parsed.netloc,
            text_content=parser.text(),
        )
