from __future__ import annotations

import json

from notelens.infrastructure.documents.block_parser import extract_external_blocks, parse_blocks, plain_text


def _text(value: str) -> list[dict[str, object]]:
    return [{"type": "text", "text": value, "styles": {}}]


def _sample_document() -> list[dict[str, object]]:
    return [
        {"id": "h1", "type": "heading", "props": {"level": 1}, "content": _text("Reading list"), "children": []},
        {
            "id": "p1",
            "type": "paragraph",
            "props": {},
            "content": [
                {"type": "text", "text": "See ", "styles": {"bold": True}},
                {"type": "link", "href": "https://example.com", "content": _text("this page")},
                {"type": "text", "text": " later.", "styles": {}},
            ],
            "children": [
                {"id": "p1-child", "type": "paragraph", "props": {}, "content": _text("nested"), "children": []},
            ],
        },
        {
            "id": "bm1",
            "type": "bookmark",
            "props": {"url": "https://example.com/article", "title": "Article"},
            "content": [],
            "children": [],
        },
        {"id": "bm-empty", "type": "bookmark", "props": {"url": "  "}, "content": [], "children": []},
        {
            "id": "f1",
            "type": "file",
            "props": {"filePath": "files/report.md", "fileName": "report.md"},
            "children": [],
        },
        {"id": "dir1", "type": "folder", "props": {"folderPath": "/tmp/notes", "folderName": "notes"}},
    ]


def test_parse_blocks_decodes_text_links_and_children() -> None:
    blocks = parse_blocks(json.dumps(_sample_document()))

    assert [b.id for b in blocks] == ["h1", "p1", "bm1", "bm-empty", "f1", "dir1"]
    assert blocks[0].is_heading
    assert blocks[0].text == "Reading list"
    assert blocks[1].text == "See this page later."
    assert [c.id for c in blocks[1].children] == ["p1-child"]
    assert blocks[1].children[0].text == "nested"
    assert blocks[2].text == ""
    assert blocks[2].props["url"] == "https://example.com/article"


def test_parse_blocks_accepts_decoded_and_wrapped_payloads() -> None:
    document = _sample_document()

    assert [b.id for b in parse_blocks(document)] == [b.id for b in parse_blocks({"blocks": document})]


def test_parse_blocks_tolerates_garbage() -> None:
    assert parse_blocks(None) == []
    assert parse_blocks("") == []
    assert parse_blocks("{not json") == []
    assert parse_blocks('{"title": "no blocks"}') == []
    assert parse_blocks([{"type": "paragraph"}, "stray", {"id": "ok", "content": "plain"}])[0].id == "ok"


def test_block_without_id_keeps_its_children(caplog) -> None:
    document = [
        {
            "type": "toggleListItem",
            "content": _text("lost heading"),
            "children": [
                {"id": "kept-1", "type": "paragraph", "content": _text("first child"), "children": []},
                {"id": "kept-2", "type": "paragraph", "content": _text("second child"), "children": []},
            ],
        },
        {"id": "after", "type": "paragraph", "content": _text("after")},
    ]

    with caplog.at_level("WARNING"):
        blocks = parse_blocks(document)

    assert [b.id for b in blocks] == ["kept-1", "kept-2", "after"]
    assert blocks[0].text == "first child"
    assert "without an id" in caplog.text


def test_missing_type_defaults_to_paragraph() -> None:
    (block,) = parse_blocks([{"id": "x", "content": "plain string"}])

    assert block.type == "paragraph"
    assert block.text == "plain string"


def test_table_content_is_flattened_row_by_row() -> None:
    table = {
        "id": "t1",
        "type": "table",
        "content": {
            "type": "tableContent",
            "rows": [
                {"cells": [_text("Item"), _text("Value")]},
                {"cells": [_text("Cash"), _text("5631")]},
            ],
        },
    }

    (block,) = parse_blocks([table])

    assert block.text == "Item | Value\nCash | 5631"


def test_extract_external_blocks_skips_blank_targets() -> None:
    refs = extract_external_blocks(parse_blocks(_sample_document()))

    assert [(r.kind, r.block_id, r.target, r.title) for r in refs] == [
        ("bookmark", "bm1", "https://example.com/article", "Article"),
        ("file", "f1", "files/report.md", "report.md"),
        ("folder", "dir1", "/tmp/notes", "notes"),
    ]


def test_plain_text_walks_children_in_order() -> None:
    text = plain_text(parse_blocks(_sample_document()))

    assert text == "Reading list\nSee this page later.\nnested"
