"""Matching primitive tests."""

from __future__ import annotations

from docnotes.anchoring import text


def test_find_all_occurrences_includes_overlaps():
    assert text.find_all_occurrences("aaaa", "aa") == [0, 1, 2]
    assert text.find_all_occurrences("abc", "") == []


def test_find_all_occurrences_case_insensitive():
    haystack = "Text here and TEXT HERE"
    assert text.find_all_occurrences(haystack, "text here") == []
    assert text.find_all_occurrences(haystack, "text here", case_sensitive=False) == [0, 14]


def test_closest_offset_prefers_earliest_on_ties():
    assert text.closest_offset([0, 10, 20], 16) == 20
    assert text.closest_offset([0, 10, 20], 15) == 10
    assert text.closest_offset([42], 0) == 42


def test_boundary_adjustment_counts_separators_before_position():
    content = "one\ntwo\nthree"
    assert text.boundary_adjustment(content, 0) == 0
    assert text.boundary_adjustment(content, 4) == 1
    assert text.boundary_adjustment(content, len(content)) == 2
    assert text.boundary_adjustment(content, 8, separator="") == 0


def test_edit_distance_with_cutoff():
    assert text.edit_distance("kitten", "sitting") == 3
    assert text.edit_distance("kitten", "sitting", score_cutoff=1) == 2


def test_classify_match_quality_grades(engine_config):
    assert text.classify_match_quality("Text here", "Text here", engine_config) == "exact"
    assert text.classify_match_quality("Text here", "TEXT HERE", engine_config) == "case-insensitive"
    assert text.classify_match_quality("annotation", "annotatoin", engine_config) == "fuzzy"
    assert text.classify_match_quality("abcdefghij", "abcdeXXXXX", engine_config) == "poor"
    assert text.classify_match_quality("abc", "xyz", engine_config) == "none"


def test_clamp():
    assert text.clamp(-4, 0, 10) == 0
    assert text.clamp(14, 0, 10) == 10
    assert text.clamp(5, 0, 10) == 5
