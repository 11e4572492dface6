"""Tests for the definition validator."""

import tempfile
from pathlib import Path

from subagents.catalog.catalog import Catalog
from subagents.catalog.models import AgentDescriptor
from subagents.catalog.validator import Validator

BODY = "You review code and explain the problems you find in plain language. " * 3


def _header(**overrides) -> dict:
    header = {
        "name": "code-reviewer",
        "category": "generic",
        "description": "Reviews code",
        "version": "1.0.0",
        "author": "Test",
        "license": "MIT",
        "tools": ["Read"],
    }
    header.update(overrides)
    return header


def _descriptor(name: str, **overrides) -> AgentDescriptor:
    return AgentDescriptor(
        name=name,
        category=overrides.get("category", "generic"),
        description=f"{name} agent",
        version="1.0.0",
        author="Test",
        license="MIT",
        tools=frozenset({"Read"}),
        body=BODY,
    )


def test_valid_header_builds_descriptor():
    result = Validator().validate(_header(tags=["review"]), BODY)
    assert result.valid
    assert result.warnings == []
    assert result.descriptor is not None
    assert result.descriptor.name == "code-reviewer"
    assert result.descriptor.tags == frozenset({"review"})
    assert result.descriptor.body == BODY


def test_missing_required_fields():
    header = _header()
    del header["author"]
    header["license"] = "  "
    result = Validator().validate(header, BODY)
    assert not result.valid
    assert "Missing required field: author" in result.errors
    assert "Missing required field: license" in result.errors
    assert result.descriptor is None


def test_name_pattern():
    for bad in ("Code-Reviewer", "code_reviewer", "code reviewer"):
        result = Validator().validate(_header(name=bad), BODY)
        assert not result.valid, bad
        assert any("lowercase alphanumeric" in e for e in result.errors)


def test_invalid_version():
    result = Validator().validate(_header(version="1.0"), BODY)
    assert not result.valid
    assert "Invalid version format: 1.0" in result.errors


def test_prerelease_version_is_valid():
    assert Validator().validate(_header(version="2.0.0-beta.1"), BODY).valid


def test_dependency_and_conflict_overlap():
    result = Validator().validate(
        _header(dependencies=["other"], conflicts=["other"]), BODY
    )
    assert not result.valid
    assert any("dependency and conflict" in e for e in result.errors)


def test_no_tools_is_warning():
    result = Validator().validate(_header(tools=[]), BODY)
    assert result.valid
    assert "No tools specified" in result.warnings


def test_advisory_warnings():
    result = Validator().validate(_header(category="gardening", extra="x"), "short")
    assert result.valid
    assert "Unknown category: gardening" in result.warnings
    assert any("too short" in w for w in result.warnings)
    assert "Unknown header field: extra" in result.warnings


def test_list_field_as_mapping_warns():
    result = Validator().validate(_header(tags={"a": 1}), BODY)
    assert result.valid
    assert any("should be a list" in w for w in result.warnings)
    assert result.descriptor.tags == frozenset()


def test_strict_promotes_warnings():
    result = Validator().validate(_header(tools=[]), BODY, strict=True)
    assert not result.valid
    assert "(strict) No tools specified" in result.errors
    assert result.warnings == []


def test_dangling_references_warn_with_catalog():
    catalog = Catalog([_descriptor("helper")])
    result = Validator(catalog).validate(
        _header(dependencies=["helper", "ghost"], conflicts=["phantom"]), BODY
    )
    assert result.valid
    assert "Dependency 'ghost' not found in catalog" in result.warnings
    assert "Conflict 'phantom' not found in catalog" in result.warnings
    assert not any("helper" in w for w in result.warnings)


def test_duplicate_name_against_catalog():
    with tempfile.TemporaryDirectory() as tmpdir:
        existing = AgentDescriptor(
            name="code-reviewer",
            category="generic",
            description="x",
            version="1.0.0",
            author="Test",
            license="MIT",
            source_path=Path(tmpdir) / "a.md",
        )
        catalog = Catalog([existing])
        validator = Validator(catalog)

        same = validator.validate(_header(), BODY, source=Path(tmpdir) / "a.md")
        assert same.valid

        other = validator.validate(_header(), BODY, source=Path(tmpdir) / "b.md")
        assert not other.valid
        assert "Duplicate agent name in catalog: 'code-reviewer'" in other.errors


def test_validate_file_reports_parse_errors():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "broken.md"
        path.write_text("no front matter here")
        result = Validator().validate_file(path)
        assert not result.valid
        assert result.name == "broken"
        assert "front matter" in result.errors[0]


def test_validate_descriptor_round_trip():
    descriptor = _descriptor("helper")
    result = Validator().validate_descriptor(descriptor)
    assert result.valid
    assert result.descriptor == descriptor
