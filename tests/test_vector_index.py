import threading

import pytest

from app.models.items import AiMetadata
from app.services.vector_index import VectorIndex
from conftest import make_item


@pytest.fixture
def index():
    idx = VectorIndex().open()
    yield idx
    idx.close()


def test_search_orders_by_cosine_and_truncates(index):
    index.add("a", [1.0, 0.0], {"category": "Bags"})
    index.add("b", [0.7, 0.7])
    index.add("c", [0.0, 1.0])
    hits = index.search([1.0, 0.1], k=2)
    assert [h[0] for h in hits] == ["a", "b"]
    assert hits[0][2] == {"category": "Bags"}
    assert hits[0][1] >= hits[1][1]


def test_remove_and_clear(index):
    index.add("a", [1.0, 0.0])
    index.add("b", [0.0, 1.0])
    index.remove("a")
    index.remove("missing")
    assert "a" not in index and len(index) == 1
    index.clear()
    assert len(index) == 0
    assert index.search([1.0, 0.0]) == []


def test_add_rejects_empty_embedding(index):
    with pytest.raises(ValueError):
        index.add("a", [])


def test_mismatched_dimension_scores_zero(index):
    index.add("a", [1.0, 0.0, 0.0])
    assert index.search([1.0, 0.0]) == [("a", 0.0, {})]


def test_rebuild_only_indexes_items_with_image_embedding(index):
    index.add("stale", [1.0, 1.0])
    with_emb = make_item(ai_metadata=AiMetadata(image_embedding=[0.1, 0.2], detected_objects=["phone"]))
    without = make_item()
    assert index.rebuild([with_emb, without]) == 1
    assert "stale" not in index
    _, _, meta = index.search([0.1, 0.2], k=1)[0]
    assert meta == {"objects": ["phone"], "category": "Electronics", "submission_type": "lost"}


def test_lifecycle():
    idx = VectorIndex()
    assert not idx.is_open
    idx.open()
    idx.add("a", [1.0])
    assert idx.is_open
    idx.close()
    assert not idx.is_open and len(idx) == 0


def test_concurrent_add_and_search(index):
    def writer(offset):
        for i in range(200):
            index.add(f"{offset}-{i}", [float(i + 1), 1.0])

    def reader():
        for _ in range(200):
            index.search([1.0, 1.0], k=5)

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(3)]
    threads += [threading.Thread(target=reader) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(index) == 600
