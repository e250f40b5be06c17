from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime, timezone
from enum import Enum


class ClaimStatus(str, Enum):
    PENDING = "pending"
    CONFLICT = "conflict"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUSPICIOUS = "suspicious"
    RESOLVED = "resolved"
    WITHDRAWN = "withdrawn"


OPEN_CLAIM_STATUSES = (ClaimStatus.PENDING, ClaimStatus.CONFLICT)
TERMINAL_CLAIM_STATUSES = (ClaimStatus.APPROVED, ClaimStatus.REJECTED)


class FraudSeverity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"


class FraudFlagType(str, Enum):
    NO_PROOF = "NO_PROOF"
    VAGUE_PROOF = "VAGUE_PROOF"
    LOW_PROOF_QUALITY = "LOW_PROOF_QUALITY"
    REPEAT_OFFENDER = "REPEAT_OFFENDER"
    MULTIPLE_REJECTIONS = "MULTIPLE_REJECTIONS"
    PRIOR_SUSPICIOUS = "PRIOR_SUSPICIOUS"
    REPEATED_CATEGORY_CLAIMS = "REPEATED_CATEGORY_CLAIMS"
    SIMILAR_ITEM_CLAIMS = "SIMILAR_ITEM_CLAIMS"
    LOW_CONFIDENCE = "LOW_CONFIDENCE"


class FraudFlag(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: FraudFlagType
    severity: FraudSeverity
    description: str

    @property
    def is_critical(self) -> bool:
        return self.severity == FraudSeverity.CRITICAL


class FraudRisk(BaseModel):
    suspicion_score: int = 0
    flags: List[FraudFlag] = Field(default_factory=list)
    assessed_at: Optional[datetime] = None


class Claim(BaseModel):
    id: str
    item_id: str
    claimant_id: str
    ownership_proofs: List[str] = Field(default_factory=list)
    status: ClaimStatus = ClaimStatus.PENDING
    ai_confidence_score: Optional[int] = None
    fraud_risk: FraudRisk = Field(default_factory=FraudRisk)
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    resolved_at: Optional[datetime] = None


class ClaimEvaluation(BaseModel):
    claim_id: str
    claimant_id: str
    confidence_score: int
    proof_quality_score: int
    history_score: int
    final_score: int
    flags: List[FraudFlag] = Field(default_factory=list)

    @property
    def has_critical_flag(self) -> bool:
        return any(f.is_critical for f in self.flags)


class ResolutionState(str, Enum):
    NO_CLAIMS = "no_claims"
    AUTO_RESOLVED = "auto_resolved"
    NEEDS_REVIEW = "needs_review"


class CompetingClaimsResult(BaseModel):
    item_id: str
    state: ResolutionState
    winner_claim_id: Optional[str] = None
    winner_claimant_id: Optional[str] = None
    winner_confidence: int = 0
    evaluations: List[ClaimEvaluation] = Field(default_factory=list)
    requires_manual_review: bool = False
    reason: Optional[str] = None
