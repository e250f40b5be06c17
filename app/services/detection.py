from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence, Union

from app.domain import lexicon
from app.scripts.logging_config import get_logger

logger = get_logger("inference")


# ------------------------------------------------------------
# 바운딩 박스
# ------------------------------------------------------------
@dataclass(frozen=True)
class CornerBox:
    """좌상단 기준 박스."""
    x: float
    y: float
    w: float
    h: float


@dataclass(frozen=True)
class CenterBox:
    """중심 기준 박스 (Roboflow 형식)."""
    cx: float
    cy: float
    w: float
    h: float


BoundingBox = Union[CornerBox, CenterBox]


def to_corner(box: BoundingBox) -> CornerBox:
    if isinstance(box, CornerBox):
        return box
    if isinstance(box, CenterBox):
        return CornerBox(box.cx - box.w / 2, box.cy - box.h / 2, box.w, box.h)
    raise TypeError(f"unsupported box type: {type(box).__name__}")


def from_extents(xmin: float, ymin: float, xmax: float, ymax: float) -> CornerBox:
    return CornerBox(xmin, ymin, xmax - xmin, ymax - ymin)


def iou(a: BoundingBox, b: BoundingBox) -> float:
    a, b = to_corner(a), to_corner(b)
    area_a = a.w * a.h
    area_b = b.w * b.h
    if area_a <= 0 or area_b <= 0:
        return 0.0

    x_left = max(a.x, b.x)
    y_top = max(a.y, b.y)
    x_right = min(a.x + a.w, b.x + b.w)
    y_bottom = min(a.y + a.h, b.y + b.h)
    inter = max(0.0, x_right - x_left) * max(0.0, y_bottom - y_top)

    union = area_a + area_b - inter
    return inter / union if union > 0 else 0.0


def are_similar_labels(label1: str, label2: str) -> bool:
    if label1 == label2:
        return True
    for key, group in lexicon.LABEL_SYNONYMS.items():
        if label1 in group and label2 in group:
            return True
        if (label1 in group and label2 == key) or (label2 in group and label1 == key):
            return True
    return False


# ------------------------------------------------------------
# 탐지 결과
# ------------------------------------------------------------
@dataclass(frozen=True)
class DetectedObject:
    label: str
    confidence: float
    bbox: CornerBox
    source_model: str

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "confidence": self.confidence,
            "bbox": [self.bbox.x, self.bbox.y, self.bbox.w, self.bbox.h],
            "source_model": self.source_model,
        }


@dataclass
class ObjectDetectionResult:
    image_url: str
    objects: List[DetectedObject] = field(default_factory=list)
    processing_time_ms: int = 0
    primary_class: Optional[str] = None

    @property
    def labels(self) -> List[str]:
        return [o.label for o in self.objects]


def deduplicate(objects: Sequence[DetectedObject], iou_threshold: float = 0.5) -> List[DetectedObject]:
    """모델 간 greedy NMS. 동의어 라벨은 같은 객체로 취급."""
    ordered = sorted(objects, key=lambda o: o.confidence, reverse=True)
    kept: List[DetectedObject] = []
    for obj in ordered:
        duplicate = any(
            iou(obj.bbox, other.bbox) > iou_threshold and are_similar_labels(obj.label, other.label)
            for other in kept
        )
        if not duplicate:
            kept.append(obj)
    return kept


class Detector(Protocol):
    name: str

    async def detect(self, image_url: str, image_bytes: Optional[bytes]) -> List[DetectedObject]:
        ...


ImageLoader = Callable[[str], Awaitable[Optional[bytes]]]


class DetectionAggregator:
    """한 이미지에 모든 detector를 동시 실행하고 박스를 병합.

    예외/타임아웃 난 detector는 빈 결과로 처리, 나머지 결과는 그대로 사용.
    """

    def __init__(self, detectors: Sequence[Detector], image_loader: Optional[ImageLoader] = None,
                 timeout_seconds: Optional[float] = None, iou_threshold: float = 0.5):
        self.detectors = list(detectors)
        self.image_loader = image_loader
        self.timeout_seconds = timeout_seconds
        self.iou_threshold = iou_threshold

    async def _run_one(self, detector: Detector, image_url: str, image_bytes: Optional[bytes]) -> List[DetectedObject]:
        try:
            coro = detector.detect(image_url, image_bytes)
            if self.timeout_seconds:
                return list(await asyncio.wait_for(coro, timeout=self.timeout_seconds))
            return list(await coro)
        except asyncio.TimeoutError:
            logger.warning("detector timeout name=%s url=%s", getattr(detector, "name", "?"), image_url)
        except Exception as e:
            logger.warning("detector failed name=%s url=%s err=%s", getattr(detector, "name", "?"), image_url, e)
        return []

    async def detect(self, image_url: str, image_bytes: Optional[bytes] = None) -> ObjectDetectionResult:
        start = time.time()

        if image_bytes is None and self.image_loader is not None:
            try:
                image_bytes = await self.image_loader(image_url)
            except Exception as e:
                logger.warning("image load failed url=%s err=%s", image_url, e)

        batches = await asyncio.gather(*(self._run_one(d, image_url, image_bytes) for d in self.detectors))
        merged = [obj for batch in batches for obj in batch]
        objects = deduplicate(merged, self.iou_threshold)

        elapsed_ms = int((time.time() - start) * 1000)
        logger.info("detect url=%s raw=%d kept=%d ms=%d", image_url, len(merged), len(objects), elapsed_ms)
        return ObjectDetectionResult(
            image_url=image_url,
            objects=objects,
            processing_time_ms=elapsed_ms,
            primary_class=objects[0].label if objects else None,
        )
