from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_evaluator, get_resolver, http_error, throttled
from app.domain.errors import LostFoundError
from app.models.claims import CompetingClaimsResult, FraudRisk
from app.services.claim_evaluator import ClaimEvaluator
from app.services.claim_resolver import ClaimResolver

router = APIRouter(prefix="/claims", tags=["claims"])


@router.post("/{claim_id}/risk", response_model=FraudRisk)
def assess_risk(claim_id: str, evaluator: ClaimEvaluator = Depends(get_evaluator)):
    try:
        return evaluator.assess_claim_risk(claim_id)
    except LostFoundError as e:
        raise http_error(e)


@router.get("/items/{item_id}/preview", response_model=CompetingClaimsResult)
def preview(item_id: str, resolver: ClaimResolver = Depends(get_resolver)):
    try:
        return resolver.preview(item_id)
    except LostFoundError as e:
        raise http_error(e)


@router.post("/items/{item_id}/process", response_model=CompetingClaimsResult)
def process(item_id: str, resolver: ClaimResolver = Depends(get_resolver)):
    try:
        return resolver.process(item_id)
    except LostFoundError as e:
        raise http_error(e)


@router.post("/process-all", dependencies=[Depends(throttled("process_all"))])
def process_all(resolver: ClaimResolver = Depends(get_resolver)):
    return resolver.process_all()


@router.post("/archive")
def archive(older_than_days: Optional[int] = Query(None, ge=0), resolver: ClaimResolver = Depends(get_resolver)):
    return resolver.archive_terminal_claims(older_than_days=older_than_days)
