from pydantic import BaseModel, Field
from typing import Optional, List, Tuple
from datetime import datetime, timezone
from enum import Enum


class SubmissionType(str, Enum):
    LOST = "lost"
    FOUND = "found"


class ItemStatus(str, Enum):
    SUBMITTED = "submitted"
    MATCHED = "matched"
    RESOLVED = "resolved"


OPEN_STATUSES = (ItemStatus.SUBMITTED, ItemStatus.MATCHED)


class GeoLocation(BaseModel):
    zone_id: Optional[str] = None
    # (lon, lat), None이면 위치 미상
    coordinates: Optional[Tuple[float, float]] = None


class TextEmbedding(BaseModel):
    item_id: str = ""
    description: str = ""
    vector: List[float] = Field(default_factory=list)
    vocabulary: List[str] = Field(default_factory=list)


class AiMetadata(BaseModel):
    image_embedding: List[float] = Field(default_factory=list)
    # 원격 텍스트 모델의 semantic 임베딩 (비어 있으면 없음)
    text_embedding: List[float] = Field(default_factory=list)
    tfidf_embedding: Optional[TextEmbedding] = None
    detected_objects: List[str] = Field(default_factory=list)
    primary_class: Optional[str] = None
    best_match_id: Optional[str] = None
    match_score: Optional[int] = None
    similarity_checked: bool = False
    suggested_matches: List[str] = Field(default_factory=list)


class Item(BaseModel):
    id: str
    tracking_id: str
    submission_type: SubmissionType
    category: str
    description: str = ""
    color: Optional[str] = None
    material: Optional[str] = None
    size: Optional[str] = None
    location: GeoLocation = Field(default_factory=GeoLocation)
    lost_or_found_at: datetime
    reported_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: ItemStatus = ItemStatus.SUBMITTED
    images: List[str] = Field(default_factory=list)
    ai_metadata: AiMetadata = Field(default_factory=AiMetadata)

    def combined_text(self) -> str:
        parts = [self.description, self.category, self.color or "", self.material or ""]
        return " ".join(p for p in parts if p)

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES
