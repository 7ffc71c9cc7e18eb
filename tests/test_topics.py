"""
Unit tests for topic addressing and wildcard matching.
"""

import pytest

from common import topics
from common.topics import Topic


class TestBuild:

    def test_addresses(self):
        assert topics.announce_topic("ns", "alice") == "ns/announce/alice"
        assert topics.message_topic("ns", "bob", "alice") == "ns/message/bob/alice"
        assert topics.announce_pattern("ns") == "ns/announce/#"
        assert topics.inbox_pattern("ns", "bob") == "ns/message/bob/#"

    def test_valid_segment(self):
        assert topics.valid_segment("alice")
        for bad in ("", "a/b", "a+", "#"):
            assert not topics.valid_segment(bad)


class TestParse:

    def test_announce(self):
        assert topics.parse("ns/announce/alice", "ns") == Topic("ns", "announce", "alice")

    def test_message(self):
        t = topics.parse("ns/message/bob/alice", "ns")
        assert (t.kind, t.target, t.sender) == ("message", "bob", "alice")

    def test_str_roundtrip(self):
        assert str(topics.parse("ns/message/bob/alice", "ns")) == "ns/message/bob/alice"

    @pytest.mark.parametrize("topic", [
        "other/announce/alice",      # foreign namespace
        "ns/announce",               # missing target
        "ns/announce/alice/extra",   # too many levels
        "ns/message/bob",            # missing sender
        "ns/message/bob/alice/x",
        "ns/message//alice",         # empty level
        "ns/unknown/bob",
        "ns",
        "",
        "nsx/announce/alice",        # prefix but not the namespace
    ])
    def test_malformed_is_none(self, topic):
        assert topics.parse(topic, "ns") is None

    def test_non_string(self):
        assert topics.parse(None, "ns") is None


class TestMatching:

    @pytest.mark.parametrize("pattern,topic,expected", [
        ("ns/announce/#", "ns/announce/alice", True),
        ("ns/announce/#", "ns/announce", True),
        ("ns/announce/#", "ns/message/bob/alice", False),
        ("ns/message/bob/#", "ns/message/bob/alice", True),
        ("ns/message/bob/#", "ns/message/carol/alice", False),
        ("ns/+/bob/+", "ns/message/bob/alice", True),
        ("ns/+", "ns/message/bob", False),
        ("#", "anything/at/all", True),
        ("ns/announce/alice", "ns/announce/alice", True),
        ("ns/announce/alice", "ns/announce/alice/x", False),
    ])
    def test_matches(self, pattern, topic, expected):
        assert topics.matches(pattern, topic) is expected

    def test_pattern_validation(self):
        assert topics.valid_pattern("a/+/#")
        assert not topics.valid_pattern("a/#/b")
        assert not topics.valid_pattern("a/b#")
        assert not topics.valid_pattern("a/x+")
        assert not topics.valid_pattern("")

    def test_is_wildcard(self):
        assert topics.is_wildcard("a/#")
        assert not topics.is_wildcard("a/b")
