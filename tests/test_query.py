"""Tests for search text parsing."""

import pytest

from convo_manager.query import Query, QueryMode, parse_query


class TestParseModes:
    def test_empty_is_none(self):
        assert parse_query("") == Query(mode=QueryMode.NONE)
        assert parse_query("   \t ") == Query(mode=QueryMode.NONE)
        assert parse_query(None).mode is QueryMode.NONE

    def test_plain_text_is_lowercase_contains(self):
        q = parse_query("  Fix Auth Bug ")
        assert q.mode is QueryMode.CONTAINS
        assert q.pattern == "fix auth bug"
        assert q.exclusions == ()

    def test_only_exclusions_is_all(self):
        q = parse_query("not:draft")
        assert q.mode is QueryMode.ALL
        assert q.exclusions == ("draft",)

    def test_or_terms(self):
        q = parse_query("Alpha|beta| GAMMA ")
        assert q.mode is QueryMode.OR
        assert q.terms == ("alpha", "beta", "gamma")

    def test_single_or_term_falls_back_to_contains(self):
        q = parse_query("alpha|")
        assert q.mode is QueryMode.CONTAINS
        assert q.pattern == "alpha|"

    def test_regex(self):
        q = parse_query("/^fix.*bug$/")
        assert q.mode is QueryMode.REGEX
        assert q.pattern == "^fix.*bug$"
        assert q.regex.search("FIX the BUG")

    def test_invalid_regex_degrades_to_literal(self):
        q = parse_query("/[/")
        assert q.mode is QueryMode.CONTAINS
        assert q.pattern == "/[/"

    def test_invalid_regex_with_pipe_becomes_or(self):
        q = parse_query("/(a|b/")
        assert q.mode is QueryMode.OR
        assert q.terms == ("/(a", "b/")

    @pytest.mark.parametrize("text", ["id:abc", "ids:abc", "IDS:abc"])
    def test_id_prefixes_are_synonyms(self, text):
        q = parse_query(text)
        assert q.mode is QueryMode.ID
        assert q.ids == ("abc",)

    def test_ids_split_on_commas_and_whitespace(self):
        q = parse_query("ids:AA,bb  cc,,dd")
        assert q.ids == ("AA", "bb", "cc", "dd")

    def test_ids_keep_case(self):
        assert parse_query("id:AbC").ids == ("AbC",)


class TestExclusions:
    def test_exclusions_are_stripped_from_text(self):
        q = parse_query("alpha not:debug")
        assert q.mode is QueryMode.CONTAINS
        assert q.pattern == "alpha"
        assert q.exclusions == ("debug",)

    def test_comma_separated_and_multiple_tokens_union(self):
        q = parse_query("NOT:Foo,bar report not:baz")
        assert q.pattern == "report"
        assert q.exclusions == ("foo", "bar", "baz")

    def test_duplicate_exclusions_collapse(self):
        assert parse_query("not:a not:A,a").exclusions == ("a",)

    def test_comma_list_may_continue_after_whitespace(self):
        q = parse_query("report not:a, b,  c")
        assert q.exclusions == ("a", "b", "c")
        assert q.pattern == "report"

    def test_exclusions_combine_with_every_mode(self):
        assert parse_query("a|b not:c").mode is QueryMode.OR
        assert parse_query("/x+/ not:c").mode is QueryMode.REGEX
        assert parse_query("ids:1,2 not:c").mode is QueryMode.ID

    def test_malformed_not_token(self):
        q = parse_query("not: alpha")
        assert q.mode is QueryMode.CONTAINS
        assert q.pattern == "alpha"
        assert q.exclusions == ()


class TestTotality:
    @pytest.mark.parametrize("text", [
        "", " ", "/", "//", "/(/", "[", "|", "||", "not:", "not:,,,",
        "ids:", "id: ", "/*/", "\\", "not:/[/", "a|/[/", "\x00", "ü|ß",
    ])
    def test_never_raises(self, text):
        q = parse_query(text)
        assert isinstance(q, Query)
        assert isinstance(q.mode, QueryMode)

    @pytest.mark.parametrize("text", ["alpha not:debug", "a|b", "/x(y)?/", "ids:1 2", "", "not:x"])
    def test_idempotent(self, text):
        assert parse_query(text) == parse_query(text)

    def test_exactly_one_payload(self):
        for text in ["abc", "a|b", "/a/", "id:a"]:
            q = parse_query(text)
            populated = [bool(q.pattern), bool(q.terms), bool(q.ids)]
            assert populated.count(True) == 1, text

    def test_query_is_immutable(self):
        q = parse_query("abc")
        with pytest.raises(AttributeError):
            q.pattern = "other"
