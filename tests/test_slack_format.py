"""Tests for the Slack message size helpers."""

from __future__ import annotations

from autoreply.slack_format import MAX_MESSAGE_LEN, split_message, truncate_message


class TestSplitMessage:
    def test_short_message_unchanged(self) -> None:
        assert split_message("hello", max_len=100) == ["hello"]

    def test_empty_message(self) -> None:
        assert split_message("") == [""]

    def test_exact_limit_not_split(self) -> None:
        assert split_message("x" * 100, max_len=100) == ["x" * 100]

    def test_splits_on_newline(self) -> None:
        text = "a" * 50 + "\n" + "b" * 50
        assert split_message(text, max_len=60) == ["a" * 50, "b" * 50]

    def test_newline_preferred_over_space(self) -> None:
        text = "one two\nthree four five"
        assert split_message(text, max_len=12) == ["one two", "three four", "five"]

    def test_splits_on_space(self) -> None:
        chunks = split_message("word " * 30, max_len=22)
        assert all(len(c) <= 22 for c in chunks)
        assert all(not c.startswith(" ") for c in chunks)
        assert " ".join(chunks).split() == ["word"] * 30

    def test_hard_split_without_whitespace(self) -> None:
        chunks = split_message("x" * 250, max_len=100)
        assert [len(c) for c in chunks] == [100, 100, 50]

    def test_default_limit(self) -> None:
        chunks = split_message("word " * 1500)
        assert len(chunks) == 2
        assert all(len(c) <= MAX_MESSAGE_LEN for c in chunks)


class TestTruncateMessage:
    def test_short_message_unchanged(self) -> None:
        assert truncate_message("hello") == "hello"

    def test_cuts_at_word_boundary(self) -> None:
        assert truncate_message("alpha beta gamma", max_len=12) == "alpha beta"
