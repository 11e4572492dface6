"""Tests for the front matter parser."""

import tempfile
from pathlib import Path

import pytest

from subagents.catalog.parser import parse_document, parse_file
from subagents.errors import ParseError


def test_parse_header_and_body():
    doc = parse_document("---\nname: my-agent\nversion: 1.0.0\n---\n# Title\n\nBody text\n")
    assert doc.header == {"name": "my-agent", "version": "1.0.0"}
    assert doc.body == "# Title\n\nBody text\n"
    assert doc.source_path is None


def test_parse_list_fields():
    doc = parse_document("---\nname: a\ntools: [Read, Write]\ntags:\n  - x\n  - y\n---\nbody")
    assert doc.header["tools"] == ["Read", "Write"]
    assert doc.header["tags"] == ["x", "y"]
    assert doc.body == "body"


def test_parse_tolerates_bom_and_leading_blank_lines():
    doc = parse_document("\ufeff\n\n---\nname: a\n---\nbody")
    assert doc.header["name"] == "a"


def test_parse_body_may_contain_delimiter():
    doc = parse_document("---\nname: a\n---\nintro\n---\nmore")
    assert doc.body == "intro\n---\nmore"


def test_missing_opening_delimiter():
    with pytest.raises(ParseError, match="no opening"):
        parse_document("name: a\n---\nbody")


def test_missing_closing_delimiter():
    with pytest.raises(ParseError, match="closing"):
        parse_document("---\nname: a\nbody without end")


def test_header_must_be_mapping():
    with pytest.raises(ParseError, match="list"):
        parse_document("---\n- a\n- b\n---\nbody")


def test_empty_header_rejected():
    with pytest.raises(ParseError, match="empty"):
        parse_document("---\n---\nbody")


def test_invalid_yaml():
    with pytest.raises(ParseError, match="Invalid YAML"):
        parse_document("---\nname: [unclosed\n---\nbody")


def test_parse_file_records_source():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "agent.md"
        path.write_text("---\nname: a\n---\nbody\n")
        doc = parse_file(path)
        assert doc.source_path == path
        assert doc.header["name"] == "a"


def test_parse_file_missing():
    with tempfile.TemporaryDirectory() as tmpdir:
        with pytest.raises(ParseError, match="Cannot read"):
            parse_file(Path(tmpdir) / "nope.md")


def test_parse_file_not_utf8():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "latin.md"
        path.write_bytes(b"---\nname: bad\n---\n\xff\xfe body")
        with pytest.raises(ParseError, match="not valid UTF-8"):
            parse_file(path)
