"""라우터 공통 의존성.

저장소는 ``settings.STORE_BACKEND`` 로 선택. 테스트는 ``app.dependency_overrides`` 로 교체.
"""
from functools import lru_cache

from fastapi import Depends, HTTPException, Request

from app.domain.errors import LostFoundError
from app.services.analytics import AnalyticsService
from app.services.bulk_matcher import BulkMatcher
from app.services.claim_evaluator import ClaimEvaluator
from app.services.claim_resolver import ClaimResolver
from app.services.detection import DetectionAggregator
from app.services.inference import InferenceClient, build_detectors
from app.services.item_enrichment import ItemEnricher
from app.services.claim_store import FirestoreClaimStore, InMemoryClaimStore
from app.services.item_store import FirestoreItemStore, InMemoryItemStore
from app.services.match_store import FirestoreMatchStore, InMemoryMatchStore
from app.services.throttle import TriggerThrottle
from app.services.vector_index import VectorIndex
from config import settings


def _use_memory() -> bool:
    return settings.STORE_BACKEND.lower() == "memory"


@lru_cache
def get_item_store():
    return InMemoryItemStore() if _use_memory() else FirestoreItemStore()


@lru_cache
def get_claim_store():
    return InMemoryClaimStore() if _use_memory() else FirestoreClaimStore()


@lru_cache
def get_match_store():
    return InMemoryMatchStore() if _use_memory() else FirestoreMatchStore()


@lru_cache
def get_vector_index() -> VectorIndex:
    return VectorIndex()


@lru_cache
def get_throttle() -> TriggerThrottle:
    return TriggerThrottle()


def get_matcher(items=Depends(get_item_store), matches=Depends(get_match_store),
                index: VectorIndex = Depends(get_vector_index)) -> BulkMatcher:
    return BulkMatcher(items, matches, index=index)


def get_evaluator(items=Depends(get_item_store), claims=Depends(get_claim_store)) -> ClaimEvaluator:
    return ClaimEvaluator(items, claims)


def get_resolver(items=Depends(get_item_store), claims=Depends(get_claim_store),
                 evaluator: ClaimEvaluator = Depends(get_evaluator)) -> ClaimResolver:
    return ClaimResolver(items, claims, evaluator=evaluator)


def get_analytics(matches=Depends(get_match_store), claims=Depends(get_claim_store)) -> AnalyticsService:
    return AnalyticsService(matches, claims)


def throttled(name: str):
    """의존성 팩토리: (client ip, 트리거 이름)마다 sliding window 1개."""
    def _check(request: Request, throttle: TriggerThrottle = Depends(get_throttle)) -> None:
        client_ip = request.client.host if request.client else "-"
        try:
            throttle.check(f"{client_ip}:{name}")
        except LostFoundError as e:
            raise http_error(e)
    return _check


def http_error(e: LostFoundError) -> HTTPException:
    return HTTPException(e.status_code, detail=e.code)


async def get_enricher(items=Depends(get_item_store), matcher: BulkMatcher = Depends(get_matcher)):
    # enrich 요청마다 aiohttp 세션 1개
    async with InferenceClient() as client:
        aggregator = DetectionAggregator(
            build_detectors(client),
            image_loader=client.fetch_image,
            timeout_seconds=settings.INFERENCE_TIMEOUT_SECONDS,
        )
        yield ItemEnricher(items, client, aggregator, matcher=matcher)
