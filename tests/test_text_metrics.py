"""Tests for the shared text heuristics."""

from tutor.utils.text_metrics import (
    Span,
    count_syllables,
    merge_overlapping,
    rewrite_spans,
    split_sentences,
    strip_placeholders,
)


def test_short_words_are_one_syllable():
    assert count_syllables("cat") == 1
    assert count_syllables("123") == 1


def test_vowel_groups_and_silent_e():
    assert count_syllables("happy") == 2
    assert count_syllables("make") == 1
    assert count_syllables("information") == 4


def test_word_without_letters_has_no_syllables():
    assert count_syllables("1234") == 0


def test_split_sentences_drops_blank_pieces():
    assert split_sentences("Hi there! How are you?? Fine.") == [
        "Hi there",
        "How are you",
        "Fine",
    ]


def test_merge_overlapping_unions_and_combines():
    spans = [Span(0, 5, 1), Span(3, 8, 3), Span(10, 12, 2)]
    merged = merge_overlapping(spans, max)
    assert [(s.start, s.end, s.payload) for s in merged] == [(0, 8, 3), (10, 12, 2)]


def test_merge_overlapping_keeps_adjacent_spans_apart():
    merged = merge_overlapping([Span(0, 3, "a"), Span(3, 6, "b")], lambda a, b: a)
    assert len(merged) == 2


def test_rewrite_spans_right_to_left():
    text = "hello world"
    out = rewrite_spans(text, [(Span(0, 5), "HI"), (Span(6, 11), "THERE")])
    assert out == "HI THERE"


def test_strip_placeholders():
    assert strip_placeholders("a [removed] b") == "a   b"
