"""Validator — structural and semantic checks on a parsed definition header.

Errors make a definition invalid; warnings never do, unless the caller asks
for strict mode, which promotes them to errors for that one call.

Checks, in order:
1. Required fields are present (name, category, description, version, author, license)
2. ``name`` is lowercase alphanumeric with hyphens and unique in the catalog
3. ``version`` is semver
4. No name appears in both ``dependencies`` and ``conflicts``
5. Referenced dependencies/conflicts exist in the catalog (warning)
6. ``tools`` is not empty (warning)
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

from subagents.catalog.categories import CATEGORY_DESCRIPTIONS
from subagents.catalog.models import AgentDescriptor, ValidationResult
from subagents.catalog.parser import ParsedDocument, parse_file
from subagents.errors import ParseError
from subagents.install.versions import is_valid_version

if TYPE_CHECKING:
    from subagents.catalog.catalog import Catalog

REQUIRED_FIELDS = ("name", "category", "description", "version", "author", "license")
LIST_FIELDS = ("tools", "tags", "keywords", "dependencies", "conflicts")
OPTIONAL_FIELDS = ("repository", "homepage")
KNOWN_FIELDS = set(REQUIRED_FIELDS) | set(LIST_FIELDS) | set(OPTIONAL_FIELDS)

NAME_PATTERN = re.compile(r"^[a-z0-9-]+$")
MIN_BODY_LENGTH = 100


class Validator:
    """Validates definition headers, optionally against a catalog.

    Without a catalog only self-contained checks run: uniqueness and
    dangling-reference checks need something to compare against.
    """

    def __init__(self, catalog: Catalog | None = None):
        self.catalog = catalog

    def validate(
        self,
        header: dict[str, Any],
        body: str = "",
        *,
        source: str | Path | None = None,
        strict: bool = False,
    ) -> ValidationResult:
        result = ValidationResult(name=str(header.get("name") or ""))
        source_path = Path(source) if source else None

        self._check_required(header, result)
        self._check_name(header, source_path, result)
        self._check_version(header, result)

        lists = {key: _as_str_set(header.get(key), key, result) for key in LIST_FIELDS}

        overlap = lists["dependencies"] & lists["conflicts"]
        if overlap:
            result.errors.append(
                "Agent lists the same name as dependency and conflict: "
                + ", ".join(sorted(overlap))
            )

        self._check_references(lists, result)

        if not lists["tools"]:
            result.warnings.append("No tools specified")

        self._check_advisories(header, body, result)

        if strict and result.warnings:
            result.errors.extend(f"(strict) {w}" for w in result.warnings)
            result.warnings = []

        if result.valid:
            result.descriptor = AgentDescriptor(
                name=str(header["name"]),
                category=str(header["category"]),
                description=str(header["description"]),
                version=str(header["version"]),
                author=str(header["author"]),
                license=str(header["license"]),
                tools=frozenset(lists["tools"]),
                tags=frozenset(lists["tags"]),
                keywords=frozenset(lists["keywords"]),
                dependencies=frozenset(lists["dependencies"]),
                conflicts=frozenset(lists["conflicts"]),
                repository=_optional_str(header.get("repository")),
                homepage=_optional_str(header.get("homepage")),
                body=body,
                source_path=source_path,
            )
        return result

    def validate_document(self, document: ParsedDocument, strict: bool = False) -> ValidationResult:
        return self.validate(
            document.header, document.body, source=document.source_path, strict=strict
        )

    def validate_descriptor(self, descriptor: AgentDescriptor, strict: bool = False) -> ValidationResult:
        return self.validate(
            descriptor.to_header(),
            descriptor.body,
            source=descriptor.source_path,
            strict=strict,
        )

    def validate_file(self, path: str | Path, strict: bool = False) -> ValidationResult:
        """Parse and validate a file; parse failures are reported as errors."""
        try:
            document = parse_file(path)
        except ParseError as e:
            return ValidationResult(name=Path(path).stem, errors=[str(e)])
        return self.validate_document(document, strict=strict)

    # ── Individual checks ───────────────────────────────────────────

    def _check_required(self, header: dict, result: ValidationResult) -> None:
        for field_name in REQUIRED_FIELDS:
            value = header.get(field_name)
            if value is None or (isinstance(value, str) and not value.strip()):
                result.errors.append(f"Missing required field: {field_name}")

    def _check_name(self, header: dict, source: Path | None, result: ValidationResult) -> None:
        name = header.get("name")
        if name is None or name == "":
            return
        name = str(name)
        if not NAME_PATTERN.match(name):
            result.errors.append(
                f"Agent name must be lowercase alphanumeric with hyphens: '{name}'"
            )
            return

        if self.catalog is None:
            return
        if name in self.catalog.duplicates:
            result.errors.append(f"Duplicate agent name in catalog: '{name}'")
            return
        existing = self.catalog.get(name)
        if existing is not None and not _same_source(existing.source_path, source):
            result.errors.append(f"Duplicate agent name in catalog: '{name}'")

    def _check_version(self, header: dict, result: ValidationResult) -> None:
        version = header.get("version")
        if version is None or version == "":
            return
        if not is_valid_version(str(version)):
            result.errors.append(f"Invalid version format: {version}")

    def _check_references(self, lists: dict[str, set[str]], result: ValidationResult) -> None:
        if self.catalog is None:
            return
        for kind in ("dependencies", "conflicts"):
            for ref in sorted(lists[kind]):
                if ref not in self.catalog:
                    noun = "Dependency" if kind == "dependencies" else "Conflict"
                    result.warnings.append(f"{noun} '{ref}' not found in catalog")

    def _check_advisories(self, header: dict, body: str, result: ValidationResult) -> None:
        category = header.get("category")
        if category and str(category) not in CATEGORY_DESCRIPTIONS:
            result.warnings.append(f"Unknown category: {category}")
        if len(body.strip()) < MIN_BODY_LENGTH:
            result.warnings.append(
                f"Agent content is too short (minimum {MIN_BODY_LENGTH} characters)"
            )
        for key in sorted(set(header) - KNOWN_FIELDS):
            result.warnings.append(f"Unknown header field: {key}")


def _as_str_set(value: Any, key: str, result: ValidationResult) -> set[str]:
    """Coerce a header list field to a set of strings."""
    if value is None:
        return set()
    if isinstance(value, (list, tuple, set)):
        return {str(item) for item in value if item is not None}
    if isinstance(value, dict):
        result.warnings.append(f"Field '{key}' should be a list, got a mapping")
        return set()
    return {str(value)}


def _optional_str(value: Any) -> str | None:
    return str(value) if value else None


def _same_source(a: Path | None, b: Path | None) -> bool:
    if a is None or b is None:
        return a is None and b is None
    return a.resolve() == b.resolve()
