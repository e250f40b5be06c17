from datetime import datetime, timedelta, timezone

import pytest

from app.domain.errors import InvalidInputError, NotFoundError
from app.models.items import AiMetadata, ItemStatus
from app.models.matching import MatchStatus
from app.services import pair_similarity
from app.services.bulk_matcher import BulkMatcher
from app.services.vector_index import VectorIndex
from conftest import make_item

JAN_10 = datetime(2024, 1, 10, tzinfo=timezone.utc)


def emb(*values):
    return AiMetadata(image_embedding=list(values), primary_class="wallet", detected_objects=["wallet"])


@pytest.fixture
def seeded(items, matches):
    lost = make_item("lost", "Wallets", "black leather wallet with card slots", id="lost-1",
                     when=JAN_10, color="black", ai_metadata=emb(1.0, 0.0))
    good = make_item("found", "Wallets", "black leather wallet", id="found-good",
                     when=JAN_10 + timedelta(hours=5), color="black", ai_metadata=emb(0.98, 0.05))
    weak = make_item("found", "Wallets", "red fabric coin purse", id="found-weak",
                     when=JAN_10 + timedelta(days=2), ai_metadata=AiMetadata(image_embedding=[0.0, 1.0]))
    other_cat = make_item("found", "Keys", "black leather key holder", id="found-keys",
                          when=JAN_10 + timedelta(hours=1), ai_metadata=emb(1.0, 0.0))
    no_emb = make_item("lost", "Keys", "silver house key", id="lost-noemb", when=JAN_10)
    for it in (lost, good, weak, other_cat, no_emb):
        items.save(it)
    return items


def test_match_all_picks_best_same_category_pair(seeded, matches):
    summary = BulkMatcher(seeded, matches).match_all()

    assert summary.total_lost == 1  # lost-noemb has no image embedding
    assert summary.total_found == 3
    assert summary.matched_pairs == 1
    assert summary.errors == 0
    top = summary.top_matches[0]
    assert (top.lost_item_id, top.found_item_id) == ("lost-1", "found-good")
    assert top.match_score >= 30
    assert summary.avg_score == top.match_score

    lost = seeded.get("lost-1")
    assert lost.ai_metadata.best_match_id == "found-good"
    assert lost.ai_metadata.match_score == top.match_score
    assert lost.ai_metadata.similarity_checked is True

    records = matches.all()
    assert len(records) == 1 and records[0].status == MatchStatus.PENDING


def test_match_all_is_idempotent(seeded, matches):
    matcher = BulkMatcher(seeded, matches)
    first = matcher.match_all()
    second = matcher.match_all()
    assert first.model_dump() == second.model_dump()
    assert len(matches.all()) == 1


def test_match_all_counts_per_item_errors(seeded, matches, monkeypatch):
    matcher = BulkMatcher(seeded, matches)

    def boom(item_id, fields):
        raise RuntimeError("write failed")

    monkeypatch.setattr(seeded, "update_ai_metadata", boom)
    summary = matcher.match_all()
    assert summary.errors == 1
    assert summary.matched_pairs == 0


def test_match_all_below_threshold_not_recorded(seeded, matches):
    summary = BulkMatcher(seeded, matches, min_score=101).match_all()
    assert summary.matched_pairs == 0
    assert seeded.get("lost-1").ai_metadata.best_match_id is None
    assert seeded.get("lost-1").ai_metadata.similarity_checked is True
    assert matches.all() == []


def test_match_all_keeps_pair_found_before_loss(items, matches):
    items.save(make_item("lost", "Wallets", "black leather wallet", id="lost-w", when=JAN_10,
                         color="black", ai_metadata=emb(1.0, 0.0)))
    items.save(make_item("found", "Wallets", "black leather wallet", id="found-w",
                         when=JAN_10 - timedelta(days=5), color="black", ai_metadata=emb(1.0, 0.0)))
    matcher = BulkMatcher(items, matches)

    summary = matcher.match_all()
    assert summary.matched_pairs == 1
    top = summary.top_matches[0]
    assert top.found_item_id == "found-w"
    assert top.match_score == 100
    assert top.impossible is True
    assert items.get("lost-w").ai_metadata.best_match_id == "found-w"
    assert matcher.find_best_match("lost-w").impossible is True

    similar = matcher.find_similar_items("lost-w")
    assert [s.matched_item_id for s in similar] == ["found-w"]
    assert similar[0].components.time == 0
    assert pair_similarity.FOUND_BEFORE_LOST in similar[0].explanation


def test_match_all_clears_stale_best_match(seeded, matches):
    matcher = BulkMatcher(seeded, matches)
    matcher.match_all()
    assert seeded.get("lost-1").ai_metadata.best_match_id == "found-good"

    seeded.update_status("found-good", ItemStatus.RESOLVED)
    summary = matcher.match_all()
    assert summary.matched_pairs == 0
    meta = seeded.get("lost-1").ai_metadata
    assert meta.best_match_id is None
    assert meta.match_score is None
    assert meta.similarity_checked is True


def test_find_best_match_does_not_persist(seeded, matches):
    pair = BulkMatcher(seeded, matches).find_best_match("lost-1")
    assert pair.found_item_id == "found-good"
    assert seeded.get("lost-1").ai_metadata.best_match_id is None
    assert matches.all() == []


def test_find_best_match_errors(seeded, matches):
    matcher = BulkMatcher(seeded, matches)
    with pytest.raises(NotFoundError):
        matcher.find_best_match("nope")
    with pytest.raises(InvalidInputError) as exc:
        matcher.find_best_match("found-good")
    assert exc.value.code == "not_lost_item"


def test_find_similar_items_works_from_found_side(seeded, matches):
    results = BulkMatcher(seeded, matches).find_similar_items("found-good")
    assert [r.matched_item_id for r in results] == ["lost-1"]
    assert results[0].explanation
    assert seeded.get("found-good").ai_metadata.suggested_matches == ["lost-1"]


def test_get_top_matches_creates_records(seeded, matches):
    top = BulkMatcher(seeded, matches).get_top_matches("lost-1")
    assert top[0].found_item_id == "found-good"
    assert matches.get(top[0].match_id) is not None


def test_quick_matches(seeded, matches):
    quick = BulkMatcher(seeded, matches).find_quick_matches("Wallets", "black leather wallet", limit=2)
    assert len(quick) == 2
    assert quick[0].similarity_score == 100
    with pytest.raises(InvalidInputError):
        BulkMatcher(seeded, matches).find_quick_matches("", "wallet")


def test_visual_neighbours_and_index(seeded, matches):
    index = VectorIndex().open()
    matcher = BulkMatcher(seeded, matches, index=index)
    assert matcher.rebuild_index() == {"indexed": 4}
    neighbours = matcher.visual_neighbours("lost-1", k=2)
    assert len(neighbours) == 2
    assert all(n.item_id.startswith("found-") for n in neighbours)
    assert neighbours[0].similarity == pytest.approx(1.0)

    item = seeded.get("found-weak")
    item.ai_metadata.image_embedding = []
    matcher.index_item(item)
    assert "found-weak" not in index

    with pytest.raises(InvalidInputError):
        BulkMatcher(seeded, matches).rebuild_index()


def test_batch_process_items(seeded, matches):
    result = BulkMatcher(seeded, matches).batch_process_items()
    assert result.processed == 5
    assert result.errors == 0
    assert all(i.ai_metadata.similarity_checked for i in seeded.find())
    # second run has nothing left to check
    assert BulkMatcher(seeded, matches).batch_process_items().processed == 0


def test_process_match_decision(seeded, matches):
    matcher = BulkMatcher(seeded, matches)
    matcher.match_all()
    record = matches.all()[0]

    updated = matcher.process_match_decision(record.id, "accepted", "admin-1", reason="owner confirmed")
    assert updated.status == MatchStatus.ACCEPTED
    assert matches.get(record.id).decided_by == "admin-1"
    assert seeded.get("lost-1").status == ItemStatus.MATCHED
    assert seeded.get("found-good").status == ItemStatus.MATCHED

    with pytest.raises(InvalidInputError):
        matcher.process_match_decision(record.id, "maybe", "admin-1")
    with pytest.raises(InvalidInputError):
        matcher.process_match_decision(record.id, "pending", "admin-1")
    with pytest.raises(NotFoundError):
        matcher.process_match_decision("missing", "rejected", "admin-1")
