"""Tests for query evaluation and snippets."""

import pytest

from convo_manager.matcher import matches, matches_id, snippet
from convo_manager.query import parse_query


class TestMatches:
    def test_none_and_all_match_everything(self):
        assert matches("anything", parse_query(""))
        assert matches("anything", parse_query("not:zzz"))
        assert matches(None, parse_query(""))

    def test_contains_is_case_insensitive(self):
        assert matches("Fix the LOGIN bug", parse_query("login"))
        assert not matches("Fix the LOGIN bug", parse_query("logout"))

    @pytest.mark.parametrize("text,expected", [
        ("an ALPHA thing", True),
        ("beta", True),
        ("has Gamma inside", True),
        ("delta only", False),
    ])
    def test_or(self, text, expected):
        assert matches(text, parse_query("alpha|beta|gamma")) is expected

    def test_regex_runs_on_original_case(self):
        q = parse_query("/bug \\d+/")
        assert matches("Fixed BUG 42 today", q)
        assert not matches("Fixed bug x", q)

    @pytest.mark.parametrize("query", ["report", "a|report", "/rep.rt/", "not:q"])
    def test_exclusion_wins_over_positive_mode(self, query):
        q = parse_query(f"{query} not:draft")
        assert not matches("Quarterly report DRAFT", q)

    def test_id_query_never_matches_fields(self):
        assert not matches("abc", parse_query("id:abc"))


class TestMatchesId:
    def test_exact_or_substring(self):
        q = parse_query("ids:AA,bb")
        assert matches_id("bb", q)
        assert matches_id("xxAAyy", q)
        assert not matches_id("cc", q)

    def test_case_sensitive(self):
        assert not matches_id("aa", parse_query("id:AA"))

    def test_non_id_query(self):
        assert not matches_id("abc", parse_query("abc"))


class TestSnippet:
    def test_short_text_has_no_markers(self):
        assert snippet("Alpha project", parse_query("alpha")) == "Alpha project"

    def test_truncated_edges_get_ellipses(self):
        text = "x" * 100 + " needle " + "y" * 100
        result = snippet(text, parse_query("needle"), context_chars=10)
        assert result.startswith("...")
        assert result.endswith("...")
        assert "needle" in result
        assert len(result) <= len("needle") + 20 + 6

    def test_leading_edge_only(self):
        result = snippet("needle at the start and then quite a lot more text", parse_query("needle"), 5)
        assert result.startswith("needle")
        assert result.endswith("...")

    def test_or_uses_earliest_term(self):
        result = snippet("one two three", parse_query("three|two"), context_chars=0)
        assert result == "...two..."

    def test_regex_hit(self):
        assert snippet("error code 500", parse_query("/\\d{3}/"), 0) == "...500"

    def test_whitespace_is_collapsed(self):
        assert snippet("line one\n\nline   two", parse_query("one")) == "line one line two"

    @pytest.mark.parametrize("query", ["", "not:x", "id:abc", "/zzz/", "missing"])
    def test_empty_when_nothing_locatable(self, query):
        assert snippet("some text", parse_query(query)) == ""

    def test_empty_text(self):
        assert snippet("", parse_query("a")) == ""
        assert snippet(None, parse_query("a")) == ""
