"""Tests for ranked catalog search."""

from subagents.catalog.catalog import Catalog
from subagents.catalog.models import AgentDescriptor
from subagents.catalog.search import SearchIndex, SearchQuery, token_overlap
from subagents.config import BUNDLED_CATALOG_DIR


def _agent(name: str, description: str = "", category: str = "generic", tags=(), keywords=()):
    return AgentDescriptor(
        name=name,
        category=category,
        description=description or f"The {name} agent",
        version="1.0.0",
        author="Test",
        license="MIT",
        tags=frozenset(tags),
        keywords=frozenset(keywords),
    )


def _index() -> SearchIndex:
    return SearchIndex(
        Catalog(
            [
                _agent("docker-specialist", "Builds container images", "cloud-devops", tags=["docker"]),
                _agent("kubernetes-operator", "Deploys docker images to clusters", "cloud-devops"),
                _agent("docker", "Plain docker helper", "generic"),
                _agent("react-builder", "Builds React components", "frontend", keywords=["jsx"]),
                _agent("api-designer", "Designs HTTP APIs", "backend", tags=["api", "rest"]),
            ]
        )
    )


def test_exact_name_then_tag_then_text():
    result = _index().search("docker")
    assert [a.name for a in result.entries] == [
        "docker",
        "docker-specialist",
        "kubernetes-operator",
    ]
    assert [h.tier for h in result.hits] == [0, 1, 2]


def test_case_insensitive():
    assert _index().search("DOCKER").entries[0].name == "docker"


def test_keyword_match():
    assert [a.name for a in _index().search("jsx").entries] == ["react-builder"]


def test_token_overlap_ranks_higher_share_first():
    result = _index().search("designs rest")
    assert result.entries[0].name == "api-designer"


def test_ties_break_by_name():
    result = _index().search("builds")
    assert [a.name for a in result.entries] == ["docker-specialist", "react-builder"]


def test_filters_apply_before_ranking():
    result = _index().search(SearchQuery(text="docker", category="cloud-devops"))
    assert [a.name for a in result.entries] == ["docker-specialist", "kubernetes-operator"]

    result = _index().search(SearchQuery(text="", tags=["rest"]))
    assert [a.name for a in result.entries] == ["api-designer"]


def test_empty_query_lists_everything_by_name():
    result = _index().search("")
    assert [a.name for a in result.entries] == sorted(a.name for a in result.entries)
    assert result.total_count == 5


def test_limit_keeps_total_count():
    result = _index().search(SearchQuery(text="docker", limit=1))
    assert len(result.entries) == 1
    assert result.total_count == 3


def test_no_match():
    result = _index().search("fortran")
    assert result.entries == []
    assert result.total_count == 0


def test_token_overlap():
    assert token_overlap("docker", "docker images") == 1.0
    assert token_overlap("docker rust", "docker images") == 0.5
    assert token_overlap("!!", "anything") == 0.0


def test_bundled_docker_tag_outranks_description():
    result = SearchIndex(Catalog.load(BUNDLED_CATALOG_DIR)).search("docker")
    names = [a.name for a in result.entries]
    assert names[0] == "docker-specialist"
    assert "kubernetes-operator" in names
    assert names.index("docker-specialist") < names.index("kubernetes-operator")


def test_zero_limit_returns_nothing():
    result = _index().search(SearchQuery(text="docker", limit=0))
    assert result.entries == []
    assert result.total_count == 3


def test_no_limit_returns_everything():
    result = _index().search(SearchQuery(text="", limit=None))
    assert len(result.entries) == 5
