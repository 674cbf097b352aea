"""Tests for the filter chain and the filter stage thread."""

import threading

import pytest

from kubetail.buffer import HandoffBuffer
from kubetail.errors import FilterError
from kubetail.filters import FilterChain, FilterStage, build_rules, split_patterns
from kubetail.models import Chunk, FilterKind, FilterRule

from conftest import wait_for

INCLUDE = FilterKind.INCLUDE
EXCLUDE = FilterKind.EXCLUDE

ACCESS_LOG = (
    b"GET /index.html example.com\n"
    b"POST /login example.com\n"
    b"GET /about mysite.com\n"
    b"  \n"
    b"PUT /upload other.org\n"
    b"GET /health other.org\n"
)


def _rule(kind, *patterns) -> FilterRule:
    return FilterRule.from_patterns(kind, patterns)


class TestSplitPatterns:
    def test_comma_separated(self):
        assert split_patterns("example.com,mysite.com") == ["example.com", "mysite.com"]

    def test_ignores_blanks(self):
        assert split_patterns(" POST , ,PUT,") == ["POST", "PUT"]


class TestBuildRules:
    def test_keeps_option_order(self):
        rules = build_rules([(EXCLUDE, ["POST"]), (INCLUDE, ["foo"])])
        assert [r.kind for r in rules] == [EXCLUDE, INCLUDE]

    def test_merges_consecutive_same_kind(self):
        rules = build_rules([(INCLUDE, ["a"]), (INCLUDE, ["b"]), (EXCLUDE, ["c"]), (INCLUDE, ["d"])])
        assert rules == [_rule(INCLUDE, "a", "b"), _rule(EXCLUDE, "c"), _rule(INCLUDE, "d")]

    def test_drops_rules_without_patterns(self):
        assert build_rules([(INCLUDE, [])]) == []

    def test_empty(self):
        assert build_rules([]) == []


class TestFilterChainBasics:
    def test_no_rules_trims_and_drops_empty_lines(self):
        chain = FilterChain([])
        assert chain.apply(b"  one  \n\n\ttwo\r\n   \n") == b"one\ntwo\n"

    def test_unterminated_last_line_gets_newline(self):
        chain = FilterChain([])
        assert chain.apply(b"one\ntwo") == b"one\ntwo\n"

    def test_invalid_pattern_raises(self):
        with pytest.raises(FilterError, match="grep"):
            FilterChain([_rule(INCLUDE, "([unclosed")])

    def test_len_counts_rules(self):
        assert len(FilterChain([_rule(INCLUDE, "a"), _rule(EXCLUDE, "b")])) == 2

    def test_non_utf8_bytes_pass_through(self):
        chain = FilterChain([_rule(INCLUDE, "err")])
        assert chain.apply(b"err \xff\xfe\nok\n") == b"err \xff\xfe\n"


class TestExcludeOnly:
    def test_no_survivor_matches_exclude(self):
        chain = FilterChain([_rule(EXCLUDE, "POST", "PUT")])
        lines = chain.filter_lines(ACCESS_LOG)
        assert lines == [
            b"GET /index.html example.com",
            b"GET /about mysite.com",
            b"GET /health other.org",
        ]
        assert not any(b"POST" in l or b"PUT" in l for l in lines)


class TestIncludeOnly:
    def test_every_survivor_matches_include(self):
        chain = FilterChain([_rule(INCLUDE, "example.com", "mysite.com")])
        lines = chain.filter_lines(ACCESS_LOG)
        assert len(lines) == 3
        assert all(b"example.com" in l or b"mysite.com" in l for l in lines)

    def test_regex_patterns(self):
        chain = FilterChain([_rule(INCLUDE, r"^GET /\w+\.html")])
        assert chain.filter_lines(ACCESS_LOG) == [b"GET /index.html example.com"]


class TestRuleOrder:
    def test_exclude_then_include(self):
        chain = FilterChain([_rule(EXCLUDE, "POST"), _rule(INCLUDE, "foo")])
        assert chain.apply(b"GET /x\nPOST /y\nfoo bar\n") == b"foo bar\n"

    def test_line_dropped_by_exclude_never_reaches_include(self):
        chain = FilterChain([_rule(EXCLUDE, "POST"), _rule(INCLUDE, "foo")])
        assert chain.apply(b"POST foo\n") == b""

    def test_option_order_changes_result(self):
        data = b"foo 1\nbar 2\nPOST bar 3\nbaz 4\n"
        grep_grep_vgrep = build_rules([(INCLUDE, ["foo"]), (INCLUDE, ["bar"]), (EXCLUDE, ["POST"])])
        grep_vgrep_grep = build_rules([(INCLUDE, ["foo"]), (EXCLUDE, ["POST"]), (INCLUDE, ["bar"])])

        first = FilterChain(grep_grep_vgrep).apply(data)
        second = FilterChain(grep_vgrep_grep).apply(data)

        assert first == b"foo 1\nbar 2\n"
        assert second == b""
        assert first != second

    def test_include_after_include_narrows(self):
        chain = FilterChain([_rule(INCLUDE, "GET"), _rule(EXCLUDE, "health"), _rule(INCLUDE, "example")])
        assert chain.filter_lines(ACCESS_LOG) == [b"GET /index.html example.com"]


class TestFilterChunk:
    def test_keeps_source(self):
        chain = FilterChain([_rule(INCLUDE, "foo")])
        result = chain.filter_chunk(Chunk(source="apache-1", data=b"foo\nbar\n"))
        assert result == Chunk(source="apache-1", data=b"foo\n")

    def test_no_survivors_gives_none(self):
        chain = FilterChain([_rule(INCLUDE, "zzz")])
        assert chain.filter_chunk(Chunk(source="apache-1", data=b"foo\nbar\n")) is None

    def test_blank_chunk_gives_none(self):
        assert FilterChain([]).filter_chunk(Chunk(source="apache-1", data=b"\n \n")) is None

    def test_same_input_same_output(self):
        chain = FilterChain([_rule(EXCLUDE, "POST"), _rule(INCLUDE, "example")])
        chunk = Chunk(source="apache-1", data=ACCESS_LOG)
        assert chain.filter_chunk(chunk) == chain.filter_chunk(chunk)


class TestFilterStage:
    def test_moves_filtered_chunks_downstream(self, done):
        raw, filtered = HandoffBuffer("raw"), HandoffBuffer("filtered")
        chain = FilterChain([_rule(EXCLUDE, "POST")])
        stage = FilterStage(chain, raw, filtered, done, poll_interval=0.02)

        raw.put(Chunk(source="a", data=b"GET /x\nPOST /y\n"))
        raw.put(Chunk(source="b", data=b"POST /only\n"))
        raw.put(Chunk(source="a", data=b"GET /z\n"))
        stage.start()

        assert wait_for(lambda: raw.idle and stage.chunks_in == 3)
        done.set()
        stage.join(timeout=2)

        assert not stage.is_alive()
        out = [filtered.try_take() for _ in range(len(filtered))]
        assert out == [Chunk(source="a", data=b"GET /x\n"), Chunk(source="a", data=b"GET /z\n")]
        assert stage.chunks_out == 2

    def test_stops_on_done_when_idle(self, done):
        stage = FilterStage(FilterChain([]), HandoffBuffer(), HandoffBuffer(), done, poll_interval=0.02)
        stage.start()
        done.set()
        stage.join(timeout=1)
        assert not stage.is_alive()
