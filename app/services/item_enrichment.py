from __future__ import annotations

import asyncio
import time
from typing import Optional

from app.domain.errors import NotFoundError
from app.models.items import Item
from app.scripts.logging_config import get_logger, log_match_event
from app.services import text_similarity
from app.services.detection import DetectionAggregator, ObjectDetectionResult

logger = get_logger("inference")


class ItemEnricher:
    """아이템 ai_metadata 채우기: 탐지 결과, 이미지 임베딩, 텍스트 임베딩.

    원격 호출 실패 시 해당 필드만 비워 두고 저장 (매칭은 텍스트 점수로 동작).
    """

    def __init__(self, items, client, aggregator: DetectionAggregator, matcher=None):
        self.items = items
        self.client = client
        self.aggregator = aggregator
        self.matcher = matcher

    async def _image_part(self, image_url: Optional[str]):
        if not image_url:
            return ObjectDetectionResult(image_url=""), None
        image_bytes = await self.client.fetch_image(image_url)
        detection, embedding = await asyncio.gather(
            self.aggregator.detect(image_url, image_bytes=image_bytes),
            self.client.embed_image(image_bytes),
        )
        return detection, embedding

    async def enrich(self, item_id: str) -> Item:
        item = self.items.get(item_id)
        if item is None:
            raise NotFoundError(f"item not found: {item_id}", code="item_not_found")

        t0 = time.time()
        text = item.combined_text()
        (detection, image_embedding), text_embedding = await asyncio.gather(
            self._image_part(item.images[0] if item.images else None),
            self.client.embed_text(text),
        )

        fields = {
            "image_embedding": image_embedding or [],
            "text_embedding": text_embedding or [],
            "tfidf_embedding": text_similarity.embed(text, item.id),
            "detected_objects": detection.labels,
            "primary_class": detection.primary_class,
        }
        self.items.update_ai_metadata(item.id, fields)
        enriched = self.items.get(item.id)

        if self.matcher is not None:
            self.matcher.index_item(enriched)

        log_match_event("item_enriched", {
            "item_id": item.id,
            "objects": detection.labels,
            "image_embedding_dim": len(fields["image_embedding"]),
            "text_embedding_dim": len(fields["text_embedding"]),
            "ms": round((time.time() - t0) * 1000, 1),
        }, logger=logger)
        return enriched
