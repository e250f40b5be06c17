import asyncio

import pytest

from app.domain.errors import NotFoundError
from app.services.bulk_matcher import BulkMatcher
from app.services.detection import CornerBox, DetectedObject, DetectionAggregator
from app.services.item_enrichment import ItemEnricher
from app.services.vector_index import VectorIndex
from conftest import make_item


class FakeClient:
    def __init__(self, image=b"jpeg", image_embedding=(0.1, 0.9), text_embedding=(0.5, 0.5)):
        self.image = image
        self.image_embedding = list(image_embedding) if image_embedding else None
        self.text_embedding = list(text_embedding) if text_embedding else None
        self.fetched = []

    async def fetch_image(self, url):
        self.fetched.append(url)
        return self.image

    async def embed_image(self, image_bytes):
        return self.image_embedding if image_bytes else None

    async def embed_text(self, text):
        return self.text_embedding


class PhoneDetector:
    name = "phone"

    async def detect(self, image_url, image_bytes):
        return [DetectedObject("phone", 0.9, CornerBox(0, 0, 10, 10), "phone")]


def enricher(items, matches, client):
    index = VectorIndex().open()
    aggregator = DetectionAggregator([PhoneDetector()], image_loader=client.fetch_image)
    return ItemEnricher(items, client, aggregator, matcher=BulkMatcher(items, matches, index=index)), index


def test_enrich_fills_metadata_and_indexes(items, matches):
    item = make_item("found", "Electronics", "black phone with cracked case", id="p1",
                     images=["https://cdn/p1.jpg"])
    items.save(item)
    client = FakeClient()
    svc, index = enricher(items, matches, client)

    enriched = asyncio.run(svc.enrich("p1"))

    ai = enriched.ai_metadata
    assert ai.image_embedding == pytest.approx([0.1, 0.9])
    assert ai.text_embedding == [0.5, 0.5]
    assert ai.detected_objects == ["phone"]
    assert ai.primary_class == "phone"
    assert ai.tfidf_embedding.item_id == "p1"
    assert "cracked" in ai.tfidf_embedding.vocabulary
    # image downloaded once, shared by detection and embedding
    assert client.fetched == ["https://cdn/p1.jpg"]
    assert "p1" in index


def test_enrich_degrades_without_image_or_remote_models(items, matches):
    item = make_item("lost", "Electronics", "black phone", id="p2")
    items.save(item)
    client = FakeClient(image_embedding=None, text_embedding=None)
    svc, index = enricher(items, matches, client)

    enriched = asyncio.run(svc.enrich("p2"))
    assert enriched.ai_metadata.image_embedding == []
    assert enriched.ai_metadata.text_embedding == []
    assert enriched.ai_metadata.detected_objects == []
    assert enriched.ai_metadata.tfidf_embedding.vocabulary
    assert client.fetched == []
    assert "p2" not in index


def test_enrich_unknown_item(items, matches):
    svc, _ = enricher(items, matches, FakeClient())
    with pytest.raises(NotFoundError):
        asyncio.run(svc.enrich("missing"))
