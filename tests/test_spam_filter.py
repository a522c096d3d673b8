"""
tests/test_spam_filter.py — Duplicate Message Filter
=====================================================
"""

from __future__ import annotations

import pytest

from streakbot.engine.spam import SpamFilter, levenshtein, similarity


class TestLevenshtein:
    @pytest.mark.parametrize(("a", "b", "expected"), [
        ("kitten", "sitting", 3),
        ("", "abc", 3),
        ("abc", "", 3),
        ("same", "same", 0),
        ("flaw", "lawn", 2),
    ])
    def test_distance(self, a, b, expected):
        assert levenshtein(a, b) == expected

    def test_symmetric(self):
        assert levenshtein("gumbo", "gambol") == levenshtein("gambol", "gumbo")


class TestSimilarity:
    def test_identical(self):
        assert similarity("hello world", "hello world") == 1.0

    def test_both_empty_is_zero(self):
        assert similarity("", "") == 0.0

    def test_one_empty(self):
        assert similarity("", "abc") == 0.0

    def test_ratio(self):
        # distance 1 over 10 characters
        assert similarity("abcdefghij", "abcdefghiX") == pytest.approx(0.9)


class TestSpamFilter:
    def test_identical_inside_window_is_spam(self):
        spam = SpamFilter()
        assert spam.is_spam("u", "good morning", now_ms=10_000) is False
        assert spam.is_spam("u", "good morning", now_ms=11_000) is True

    def test_identical_after_window_is_not_spam(self):
        spam = SpamFilter()
        spam.is_spam("u", "good morning", now_ms=10_000)
        assert spam.is_spam("u", "good morning", now_ms=13_000) is False

    def test_window_edge_is_not_spam(self):
        spam = SpamFilter(window_ms=2500)
        spam.is_spam("u", "good morning", now_ms=10_000)
        assert spam.is_spam("u", "good morning", now_ms=12_500) is False

    def test_different_content_inside_window_is_not_spam(self):
        spam = SpamFilter()
        spam.is_spam("u", "good morning", now_ms=10_000)
        assert spam.is_spam("u", "what is for lunch?", now_ms=10_500) is False

    def test_similarity_must_exceed_threshold(self):
        spam = SpamFilter(threshold=0.9)
        spam.is_spam("u", "abcdefghij", now_ms=10_000)
        # exactly 0.9 similar: not strictly greater
        assert spam.is_spam("u", "abcdefghiX", now_ms=10_100) is False

    def test_empty_messages_are_not_spam(self):
        spam = SpamFilter()
        spam.is_spam("u", "", now_ms=10_000)
        assert spam.is_spam("u", "", now_ms=10_100) is False

    def test_users_are_independent(self):
        spam = SpamFilter()
        spam.is_spam("a", "hi there", now_ms=10_000)
        assert spam.is_spam("b", "hi there", now_ms=10_100) is False

    def test_spam_does_not_refresh_slot(self):
        spam = SpamFilter()
        spam.is_spam("u", "copy paste", now_ms=10_000)
        assert spam.is_spam("u", "copy paste", now_ms=12_000) is True
        # measured against 10_000, not 12_000
        assert spam.is_spam("u", "copy paste", now_ms=12_600) is False

    def test_forget(self):
        spam = SpamFilter()
        spam.is_spam("u", "hello", now_ms=10_000)
        spam.forget("u")
        assert len(spam) == 0
        assert spam.is_spam("u", "hello", now_ms=10_100) is False

    def test_stale_slots_pruned(self):
        spam = SpamFilter(stale_after_ms=1_000, cleanup_interval_ms=1_000)
        spam.is_spam("a", "x", now_ms=1_000)
        spam.is_spam("b", "y", now_ms=5_000)
        assert len(spam) == 1
