"""Definition parser: splits a document into YAML front matter and body."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from subagents.errors import ParseError

DELIMITER = "---"


@dataclass(frozen=True)
class ParsedDocument:
    """Structural result of parsing; no semantic checks applied."""

    header: dict[str, Any]
    body: str
    source_path: Path | None = None


def parse_document(text: str, source: str | Path | None = None) -> ParsedDocument:
    """Parse a definition document.

    The header is YAML enclosed between two ``---`` lines at the top of the
    document; everything after the closing line is the body.

    Raises:
        ParseError: If the delimiters are missing or the header is not a
            YAML mapping.
    """
    where = f" in {source}" if source else ""
    stripped = text.lstrip("\ufeff").lstrip("\n")
    first_line, _, rest = stripped.partition("\n")
    if first_line.strip() != DELIMITER:
        raise ParseError(f"Missing front matter (no opening '---'){where}")

    if rest.startswith(DELIMITER):
        frontmatter, body = "", rest[len(DELIMITER):]
    else:
        closing = rest.find("\n" + DELIMITER)
        if closing == -1:
            raise ParseError(f"Missing closing '---' for front matter{where}")
        frontmatter = rest[:closing]
        body = rest[closing + len(DELIMITER) + 1:]

    # Drop the remainder of the closing delimiter line.
    _, newline, body = body.partition("\n")
    if not newline:
        body = ""

    try:
        header = yaml.safe_load(frontmatter) if frontmatter.strip() else None
    except yaml.YAMLError as e:
        raise ParseError(f"Invalid YAML front matter{where}: {e}") from e

    if not isinstance(header, dict):
        kind = "empty" if header is None else type(header).__name__
        raise ParseError(f"Front matter must be a key/value mapping, got {kind}{where}")

    return ParsedDocument(
        header={str(k): v for k, v in header.items()},
        body=body,
        source_path=Path(source) if source else None,
    )


def parse_file(path: str | Path) -> ParsedDocument:
    """Read and parse a definition file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ParseError(f"Cannot read {path}: {e}") from e
    except UnicodeDecodeError as e:
        raise ParseError(f"{path} is not valid UTF-8: {e}") from e
    return parse_document(text, source=path)
