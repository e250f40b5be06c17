from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_enricher, get_matcher, http_error, throttled
from app.domain.errors import LostFoundError
from app.models.items import Item
from app.models.matching import (
    BatchResult, MatchDecisionRequest, MatchingSummary, MatchRecord, PairMatch,
    QuickMatch, SimilarItem, TopMatch, VisualNeighbour,
)
from app.services.bulk_matcher import BulkMatcher
from app.services.item_enrichment import ItemEnricher

router = APIRouter(prefix="/matching", tags=["matching"])


@router.post("/run", response_model=MatchingSummary, dependencies=[Depends(throttled("match_all"))])
def run_match_all(matcher: BulkMatcher = Depends(get_matcher)):
    return matcher.match_all()


@router.post("/batch", response_model=BatchResult, dependencies=[Depends(throttled("batch"))])
def run_batch(limit: int = Query(100, ge=1, le=1000), matcher: BulkMatcher = Depends(get_matcher)):
    return matcher.batch_process_items(limit=limit)


@router.get("/quick", response_model=List[QuickMatch])
def quick_matches(
    category: str,
    description: str = "",
    zone_id: Optional[str] = None,
    limit: int = Query(5, ge=1, le=50),
    matcher: BulkMatcher = Depends(get_matcher),
):
    try:
        return matcher.find_quick_matches(category, description, zone_id=zone_id, limit=limit)
    except LostFoundError as e:
        raise http_error(e)


@router.get("/items/{item_id}/best", response_model=Optional[PairMatch])
def best_match(item_id: str, matcher: BulkMatcher = Depends(get_matcher)):
    try:
        return matcher.find_best_match(item_id)
    except LostFoundError as e:
        raise http_error(e)


@router.post("/items/{item_id}/similar", response_model=List[SimilarItem])
def similar_items(item_id: str, matcher: BulkMatcher = Depends(get_matcher)):
    try:
        return matcher.find_similar_items(item_id)
    except LostFoundError as e:
        raise http_error(e)


@router.get("/items/{item_id}/top", response_model=List[TopMatch])
def top_matches(item_id: str, limit: int = Query(10, ge=1, le=50), matcher: BulkMatcher = Depends(get_matcher)):
    try:
        return matcher.get_top_matches(item_id, limit=limit)
    except LostFoundError as e:
        raise http_error(e)


@router.get("/items/{item_id}/visual", response_model=List[VisualNeighbour])
def visual_neighbours(item_id: str, k: int = Query(10, ge=1, le=50), matcher: BulkMatcher = Depends(get_matcher)):
    try:
        return matcher.visual_neighbours(item_id, k=k)
    except LostFoundError as e:
        raise http_error(e)


@router.post("/items/{item_id}/enrich", response_model=Item)
async def enrich_item(item_id: str, enricher: ItemEnricher = Depends(get_enricher)):
    try:
        return await enricher.enrich(item_id)
    except LostFoundError as e:
        raise http_error(e)


@router.post("/index/rebuild")
def rebuild_index(matcher: BulkMatcher = Depends(get_matcher)):
    try:
        return matcher.rebuild_index()
    except LostFoundError as e:
        raise http_error(e)


@router.post("/{match_id}/decision", response_model=MatchRecord)
def match_decision(match_id: str, body: MatchDecisionRequest, matcher: BulkMatcher = Depends(get_matcher)):
    try:
        return matcher.process_match_decision(match_id, body.decision, body.admin_id, reason=body.reason)
    except LostFoundError as e:
        raise http_error(e)
