from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime, timezone
from enum import Enum


class ScoreComponents(BaseModel):
    embedding: int = 0
    text: int = 0
    class_: int = Field(0, alias="class")
    location: int = 0
    time: int = 0

    model_config = {"populate_by_name": True}


class PairScore(BaseModel):
    total: int
    components: ScoreComponents
    object_overlap: float = 0.0
    explanation: List[str] = Field(default_factory=list)
    # 습득 시각이 분실 시각보다 앞섬
    impossible: bool = False


class PairMatch(BaseModel):
    lost_item_id: str
    lost_tracking_id: str
    found_item_id: str
    found_tracking_id: str
    match_score: int
    embedding_score: int
    text_score: int
    class_score: int
    category: str
    impossible: bool = False


class MatchingSummary(BaseModel):
    total_lost: int
    total_found: int
    matched_pairs: int
    avg_score: int
    errors: int = 0
    top_matches: List[PairMatch] = Field(default_factory=list)


class SimilarItem(BaseModel):
    matched_item_id: str
    overall_score: int
    components: ScoreComponents
    object_overlap: float = 0.0
    explanation: List[str] = Field(default_factory=list)
    confidence_level: str = "low"


class MatchStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    OVERRIDDEN = "overridden"


class MatchRecord(BaseModel):
    id: str
    lost_item_id: str
    found_item_id: str
    category: str = ""
    similarity_score: int
    components: ScoreComponents = Field(default_factory=ScoreComponents)
    status: MatchStatus = MatchStatus.PENDING
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    decided_by: Optional[str] = None


class TopMatch(BaseModel):
    match_id: str
    lost_item_id: str
    found_item_id: str
    similarity_score: int
    components: ScoreComponents
    explanation: List[str] = Field(default_factory=list)
    confidence_level: str = "low"


class QuickMatch(BaseModel):
    item_id: str
    tracking_id: str
    description: str
    similarity_score: int
    submitted_at: datetime


class VisualNeighbour(BaseModel):
    item_id: str
    similarity: float
    category: str = ""
    objects: List[str] = Field(default_factory=list)


class BatchResult(BaseModel):
    processed: int = 0
    matched: int = 0
    errors: int = 0


class MatchDecisionRequest(BaseModel):
    decision: str
    admin_id: str
    reason: Optional[str] = None
