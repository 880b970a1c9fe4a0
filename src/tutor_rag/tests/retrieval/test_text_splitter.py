import logging

import pytest

from tutor_rag.common.tokenisation import HeuristicTokenCounter
from tutor_rag.retrieval.text_splitter import SentenceWindowChunker, split_sentence_spans


WORDS = ["one", "two", "three", "four", "five", "six", "seven", "eight", "nine", "ten"]
LONG_TEXT = " ".join(f"Sentence {w} has a few words." for w in WORDS)


def test_short_document_fits_in_one_chunk():
    text = "Cats are mammals. Cats have fur."
    chunks = SentenceWindowChunker().chunk(text, target_size=10, overlap=4)

    assert len(chunks) == 1
    assert chunks[0].text == "Cats are mammals. Cats have fur."
    assert (chunks[0].start_offset, chunks[0].end_offset) == (0, len(text))


@pytest.mark.parametrize("text", ["", "   ", "\n\t "])
def test_empty_or_whitespace_text_yields_no_chunks(text):
    assert SentenceWindowChunker().chunk(text) == []


def test_sentence_spans_tile_the_text():
    text = "First one. Second one!  Third?\nTrailing fragment"
    spans = split_sentence_spans(text)

    assert spans[0][0] == 0
    assert spans[-1][1] == len(text)
    for (_, end), (start, _) in zip(spans, spans[1:]):
        assert end == start
    assert text[spans[1][0]:spans[1][1]].strip() == "Second one!"


def test_chunk_spans_cover_document_without_gaps():
    chunks = SentenceWindowChunker(target_size=20, overlap=8).chunk(LONG_TEXT)

    assert len(chunks) > 1
    assert chunks[0].start_offset == 0
    assert chunks[-1].end_offset == len(LONG_TEXT)
    for prev, nxt in zip(chunks, chunks[1:]):
        assert prev.end_offset == nxt.start_offset


def test_chunks_respect_token_budget():
    counter = HeuristicTokenCounter()
    chunks = SentenceWindowChunker(target_size=20, overlap=8).chunk(LONG_TEXT)

    for chunk in chunks:
        assert chunk.text
        assert counter.count(chunk.text) <= 20


def test_consecutive_chunks_share_overlap_tail():
    overlap = 8
    chunks = SentenceWindowChunker(target_size=20, overlap=overlap).chunk(LONG_TEXT)

    n_words = overlap // 2
    for prev, nxt in zip(chunks, chunks[1:]):
        assert nxt.text.split()[:n_words] == prev.text.split()[-n_words:]


def test_zero_overlap_starts_each_chunk_on_a_sentence():
    chunks = SentenceWindowChunker(target_size=20, overlap=0).chunk(LONG_TEXT)

    for chunk in chunks:
        assert chunk.text.startswith("Sentence ")


def test_oversized_sentence_is_emitted_whole():
    long_sentence = "This sentence is definitely far longer than five tokens."
    text = f"{long_sentence} Short."

    chunks = SentenceWindowChunker(target_size=5, overlap=0).chunk(text)

    assert [c.text for c in chunks] == [long_sentence, "Short."]


def test_overlap_tail_shrinks_to_fit_next_sentence():
    long_sentence = "This sentence is definitely far longer than five tokens."
    text = f"{long_sentence} Short."

    chunks = SentenceWindowChunker(target_size=5, overlap=128).chunk(text)

    assert chunks[1].text == "five tokens. Short."
    assert HeuristicTokenCounter().count(chunks[1].text) <= 5


def test_shortened_overlap_tail_is_logged(caplog):
    caplog.set_level(logging.DEBUG, logger="tutor_rag.retrieval.text_splitter")
    text = "This sentence is definitely far longer than five tokens. Short."

    SentenceWindowChunker(target_size=5, overlap=128).chunk(text)

    assert "Overlap tail shortened from 9 to 2 words" in caplog.text


def test_full_overlap_tail_is_not_logged(caplog):
    caplog.set_level(logging.DEBUG, logger="tutor_rag.retrieval.text_splitter")

    SentenceWindowChunker(target_size=20, overlap=8).chunk(LONG_TEXT)

    assert "Overlap tail shortened" not in caplog.text


def test_invalid_parameters_are_rejected():
    with pytest.raises(ValueError):
        SentenceWindowChunker(target_size=0)
    with pytest.raises(ValueError):
        SentenceWindowChunker(overlap=-1)
