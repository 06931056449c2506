from __future__ import annotations

import logging
import zipfile
from pathlib import Path
from typing import Any

from notelens.core.errors import ExtractionError
from notelens.infrastructure.extractors.html_text import html_to_text

logger = logging.getLogger(__name__)


class FileTextExtractor:
    """Plain text out of the file formats bookmarks and folders can point at.

    Text, Markdown, HTML and EPUB are read directly; PDF, DOCX and XLSX go
    through docling, which is imported on first use.
    """

    TEXT_EXTENSIONS = {".txt", ".md"}
    HTML_EXTENSIONS = {".html", ".htm"}
    DOCLING_EXTENSIONS = {".pdf", ".docx", ".xlsx"}
    EPUB_EXTENSIONS = {".epub"}

    SUPPORTED_EXTENSIONS = {
        *TEXT_EXTENSIONS,
        *HTML_EXTENSIONS,
        *DOCLING_EXTENSIONS,
        *EPUB_EXTENSIONS,
    }

    def __init__(self) -> None:
        self._converter: Any | None = None

    @classmethod
    def supports(cls, path: Path) -> bool:
        return path.suffix.lower() in cls.SUPPORTED_EXTENSIONS

    def extract_text(self, path: Path) -> str:
        if not path.is_file():
            raise ExtractionError(f"File not found: {path}")
        suffix = path.suffix.lower()
        try:
            if suffix in self.TEXT_EXTENSIONS:
                return path.read_text(encoding="utf-8", errors="replace")
            if suffix in self.HTML_EXTENSIONS:
                return html_to_text(path.read_text(encoding="utf-8", errors="replace"))
            if suffix in self.EPUB_EXTENSIONS:
                return self._extract_epub(path)
            if suffix in self.DOCLING_EXTENSIONS:
                return self._extract_docling(path)
        except ExtractionError:
            raise
        except (OSError, zipfile.BadZipFile, ValueError) as exc:
            raise ExtractionError(f"Unable to read {path.name}: {exc}") from exc
        raise ExtractionError(f"Unsupported file type: {path.suffix or path.name}")

    @staticmethod
    def _extract_epub(path: Path) -> str:
        parts: list[str] = []
        with zipfile.ZipFile(path, "r") as archive:
            for name in sorted(archive.namelist()):
                if name.lower().endswith((".html", ".htm", ".xhtml")):
                    text = html_to_text(archive.read(name).decode("utf-8", errors="replace"))
                    if text:
                        parts.append(text)
        return "\n\n".join(parts)

    def _extract_docling(self, path: Path) -> str:
        converter = self._docling_converter()
        try:
            result = converter.convert(str(path))
        except Exception as exc:
            raise ExtractionError(f"docling could not convert {path.name}: {exc}") from exc
        document = getattr(result, "document", None)
        if document is None:
            return ""
        return str(document.export_to_markdown())

    def _docling_converter(self) -> Any:
        if self._converter is not None:
            return self._converter
        try:
            # Keep import local so text-only users don't require docling.
            from docling.document_converter import DocumentConverter  # type: ignore
        except ImportError as exc:  # pragma: no cover - dependency guard
            raise ExtractionError(
                "Docling is not installed. Install with `pip install -e '.[docling]'` to index PDF/DOCX/XLSX files."
            ) from exc
        logger.info("Loading docling document converter")
        self._converter = DocumentConverter()
        return self._converter
