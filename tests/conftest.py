import uuid
from datetime import datetime, timezone

import pytest

from app.models.claims import Claim
from app.models.items import AiMetadata, GeoLocation, Item, SubmissionType
from app.services.claim_store import InMemoryClaimStore
from app.services.item_store import InMemoryItemStore
from app.services.match_store import InMemoryMatchStore

CAMPUS = (127.0276, 37.4979)  # (lon, lat)


def make_item(submission_type="lost", category="Electronics", description="", when=None, **kw):
    ai = kw.pop("ai_metadata", None) or AiMetadata(**kw.pop("ai", {}))
    return Item(
        id=kw.pop("id", uuid.uuid4().hex[:8]),
        tracking_id=kw.pop("tracking_id", "T-" + uuid.uuid4().hex[:6]),
        submission_type=SubmissionType(submission_type),
        category=category,
        description=description,
        location=kw.pop("location", GeoLocation(zone_id="main", coordinates=CAMPUS)),
        lost_or_found_at=when or datetime(2024, 1, 10, 12, tzinfo=timezone.utc),
        ai_metadata=ai,
        **kw,
    )


def make_claim(item_id, claimant_id="user-1", proofs=(), **kw):
    return Claim(
        id=kw.pop("id", uuid.uuid4().hex[:8]),
        item_id=item_id,
        claimant_id=claimant_id,
        ownership_proofs=list(proofs),
        **kw,
    )


@pytest.fixture
def items():
    return InMemoryItemStore()


@pytest.fixture
def claims():
    return InMemoryClaimStore()


@pytest.fixture
def matches():
    return InMemoryMatchStore()
