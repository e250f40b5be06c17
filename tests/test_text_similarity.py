import math

import pytest

from app.services import text_similarity as ts


def test_identical_text_is_100():
    assert ts.similarity("black leather wallet", "black leather wallet") == 100


def test_no_shared_tokens_is_0():
    assert ts.similarity("black leather wallet", "silver laptop charger") == 0


def test_empty_or_stopword_only():
    assert ts.similarity("", "black wallet") == 0
    assert ts.similarity("black wallet", "") == 0
    # only stop words / domain words
    assert ts.similarity("I lost my item please help", "black wallet") == 0


def test_similarity_is_symmetric():
    a = "blue backpack with laptop sticker"
    b = "navy backpack, sticker on the front pocket"
    assert ts.similarity(a, b) == ts.similarity(b, a)
    assert 0 < ts.similarity(a, b) < 100


def test_preprocess_drops_punctuation_short_tokens_and_stop_words():
    assert ts.preprocess("The iPhone-13, a red case!") == ["iphone", "13", "red", "case"]


def test_term_frequency():
    tf = ts.term_frequency(["wallet", "black", "wallet"])
    assert tf["wallet"] == pytest.approx(2 / 3)
    assert tf["black"] == pytest.approx(1 / 3)
    assert ts.term_frequency([]) == {}


def test_pairwise_idf_shared_vs_unique():
    idf = ts.pairwise_idf(["wallet", "black"], ["wallet"])
    assert idf["wallet"] == pytest.approx(1.0)
    assert idf["black"] == pytest.approx(math.log(3 / 2) + 1)


def test_cosine_bounds_and_degenerate_cases():
    a, b = [1.0, 2.0, 0.0], [0.5, 0.0, 3.0]
    assert ts.cosine_similarity(a, b) == pytest.approx(ts.cosine_similarity(b, a))
    assert 0.0 <= ts.cosine_similarity(a, b) <= 1.0
    assert ts.cosine_similarity(a, a) == pytest.approx(1.0)
    assert ts.cosine_similarity([], []) == 0.0
    assert ts.cosine_similarity([1.0, 2.0], [1.0]) == 0.0
    assert ts.cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0


def test_embed_is_normalized_with_sorted_vocabulary():
    emb = ts.embed("serial number scratch on black laptop", item_id="it-1")
    assert emb.item_id == "it-1"
    assert emb.vocabulary == sorted(emb.vocabulary)
    assert math.sqrt(sum(v * v for v in emb.vector)) == pytest.approx(1.0)
    weights = dict(zip(emb.vocabulary, emb.vector))
    # distinctive terms outweigh common ones at equal frequency
    assert weights["serial"] > weights["black"]


def test_embed_empty_text():
    emb = ts.embed("", item_id="x")
    assert emb.vector == [] and emb.vocabulary == []


def test_quick_text_match():
    assert ts.quick_text_match("black wallet", "Accessories", "black leather wallet", "accessories") == 100
    assert ts.quick_text_match("black wallet", "Accessories", "red umbrella", "Accessories") == 30
    assert ts.quick_text_match("black wallet", "Bags", "black wallet", "Accessories") == 70
