from __future__ import annotations

import io
import urllib.error
import urllib.request
from pathlib import Path

import pytest

from notelens.cli.main import build_parser, main


def test_init_creates_data_directory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("NOTELENS_HOME", raising=False)

    assert main(["--project-root", str(tmp_path), "init"]) == 0

    data_dir = tmp_path / ".notelens"
    assert (data_dir / "notelens.db").exists()
    assert (data_dir / "notes").is_dir()
    assert (data_dir / "vector" / "qdrant").is_dir()
    assert (data_dir / "rag_config.json").exists()

    assert main(["--project-root", str(tmp_path), "init"]) == 0


def test_config_show_masks_api_key(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.delenv("NOTELENS_HOME", raising=False)
    config_path = tmp_path / ".notelens" / "rag_config.json"
    config_path.parent.mkdir(parents=True)
    config_path.write_text(
        '{"provider": "openai", "model": "text-embedding-3-small", "apiKey": "sk-abcdefghijklmnop"}',
        encoding="utf-8",
    )

    assert main(["--project-root", str(tmp_path), "config", "show"]) == 0

    out = capsys.readouterr().out
    assert "openai" in out
    assert "text-embedding-3-small" in out
    assert "sk-abcdefghijklmnop" not in out
    assert "mnop" in out


def test_parser_carries_chunking_options() -> None:
    args = build_parser().parse_args(["--max-chunk-size", "400", "--chunk-overlap", "50", "search", "roses", "--limit", "3"])

    assert args.max_chunk_size == 400
    assert args.chunk_overlap == 50
    assert args.query == "roses"
    assert args.limit == 3


def test_external_delete_requires_kind() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args(["external", "delete", "--doc-id", "d", "--block-id", "b"])


@pytest.mark.parametrize(("status", "expected_exit"), [(401, 3), (404, 3), (503, 3), (429, 1)])
def test_provider_errors_map_to_exit_codes(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, status: int, expected_exit: int
) -> None:
    monkeypatch.delenv("NOTELENS_HOME", raising=False)

    def refuse(request: urllib.request.Request, timeout: float | None = None) -> None:
        raise urllib.error.HTTPError(request.full_url, status, "error", hdrs=None, fp=io.BytesIO(b"bad key"))

    monkeypatch.setattr(urllib.request, "urlopen", refuse)

    assert main(["--project-root", str(tmp_path), "search", "anything"]) == expected_exit
