from __future__ import annotations

import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from app.models.claims import Claim, ClaimStatus, TERMINAL_CLAIM_STATUSES
from app.scripts.logging_config import get_logger
from . import item_store  # reuse Firestore client

logger = get_logger("claim_store")

# Firestore 구조
# claims/{claim_id}          { item_id, claimant_id, ownership_proofs, status, fraud_risk{...}, ... }
# claims_archive/{claim_id}  동일 구조, 보관 기간 지난 종결 클레임
CLAIMS_COLLECTION = "claims"
ARCHIVE_COLLECTION = "claims_archive"


def _status_values(statuses: Optional[Iterable[ClaimStatus]]) -> Optional[List[str]]:
    if statuses is None:
        return None
    return [ClaimStatus(s).value for s in statuses]


class InMemoryClaimStore:
    def __init__(self, claims: Iterable[Claim] = ()):
        self._lock = threading.RLock()
        self._claims: Dict[str, Claim] = {}
        self._archive: Dict[str, Claim] = {}
        for claim in claims:
            self.save(claim)

    def _select(self, pred) -> List[Claim]:
        with self._lock:
            rows = [c.model_copy(deep=True) for c in self._claims.values() if pred(c)]
        rows.sort(key=lambda c: c.submitted_at)
        return rows

    def get(self, claim_id: str) -> Optional[Claim]:
        with self._lock:
            claim = self._claims.get(claim_id)
            return claim.model_copy(deep=True) if claim else None

    def save(self, claim: Claim) -> Claim:
        with self._lock:
            self._claims[claim.id] = claim.model_copy(deep=True)
        return claim

    def for_item(self, item_id: str, statuses: Optional[Iterable[ClaimStatus]] = None) -> List[Claim]:
        wanted = _status_values(statuses)
        return self._select(lambda c: c.item_id == item_id and (wanted is None or c.status.value in wanted))

    def by_claimant(self, claimant_id: str) -> List[Claim]:
        return self._select(lambda c: c.claimant_id == claimant_id)

    def item_ids_with_status(self, statuses: Iterable[ClaimStatus]) -> List[str]:
        wanted = _status_values(statuses)
        seen: Dict[str, None] = {}
        for c in self._select(lambda c: c.status.value in wanted):
            seen.setdefault(c.item_id, None)
        return list(seen)

    def all(self) -> List[Claim]:
        return self._select(lambda c: True)

    def in_window(self, start: datetime, end: datetime) -> List[Claim]:
        return self._select(lambda c: start <= c.submitted_at <= end)

    def archive_terminal(self, before: datetime) -> int:
        terminal = _status_values(TERMINAL_CLAIM_STATUSES)
        with self._lock:
            ids = [cid for cid, c in self._claims.items()
                   if c.status.value in terminal and (c.resolved_at or c.submitted_at) < before]
            for cid in ids:
                self._archive[cid] = self._claims.pop(cid)
        return len(ids)

    def archived(self) -> List[Claim]:
        with self._lock:
            return [c.model_copy(deep=True) for c in self._archive.values()]


class FirestoreClaimStore:
    def __init__(self, db=None):
        self._db = db

    def _client(self):
        return self._db or item_store.get_db()

    def _collection(self, name: str = CLAIMS_COLLECTION):
        return self._client().collection(name)

    @staticmethod
    def _to_doc(claim: Claim) -> dict:
        doc = claim.model_dump(mode="json", exclude={"id"})
        doc["submitted_at"] = claim.submitted_at
        doc["resolved_at"] = claim.resolved_at
        return doc

    @staticmethod
    def _from_snapshot(snap) -> Claim:
        data = snap.to_dict() or {}
        data["id"] = snap.id
        return Claim.model_validate(data)

    def _stream(self, query) -> List[Claim]:
        claims: List[Claim] = []
        for snap in query.stream():
            try:
                claims.append(self._from_snapshot(snap))
            except Exception as e:
                logger.warning("skip malformed claim doc=%s err=%s", snap.id, e)
        claims.sort(key=lambda c: c.submitted_at)
        return claims

    def get(self, claim_id: str) -> Optional[Claim]:
        snap = self._collection().document(claim_id).get()
        if not snap.exists:
            return None
        return self._from_snapshot(snap)

    def save(self, claim: Claim) -> Claim:
        self._collection().document(claim.id).set(self._to_doc(claim))
        logger.info("firestore.write op=set doc=%s/%s status=%s", CLAIMS_COLLECTION, claim.id, claim.status.value)
        return claim

    def for_item(self, item_id: str, statuses: Optional[Iterable[ClaimStatus]] = None) -> List[Claim]:
        query = self._collection().where("item_id", "==", item_id)
        wanted = _status_values(statuses)
        if wanted is not None:
            query = query.where("status", "in", wanted)
        return self._stream(query)

    def by_claimant(self, claimant_id: str) -> List[Claim]:
        return self._stream(self._collection().where("claimant_id", "==", claimant_id))

    def item_ids_with_status(self, statuses: Iterable[ClaimStatus]) -> List[str]:
        query = self._collection().where("status", "in", _status_values(statuses))
        seen: Dict[str, None] = {}
        for c in self._stream(query):
            seen.setdefault(c.item_id, None)
        return list(seen)

    def all(self) -> List[Claim]:
        return self._stream(self._collection())

    def in_window(self, start: datetime, end: datetime) -> List[Claim]:
        query = (self._collection()
                 .where("submitted_at", ">=", start)
                 .where("submitted_at", "<=", end))
        return self._stream(query)

    def archive_terminal(self, before: datetime) -> int:
        query = self._collection().where("status", "in", _status_values(TERMINAL_CLAIM_STATUSES))
        moved = 0
        for claim in self._stream(query):
            if (claim.resolved_at or claim.submitted_at) >= before:
                continue
            self._collection(ARCHIVE_COLLECTION).document(claim.id).set(self._to_doc(claim))
            self._collection().document(claim.id).delete()
            moved += 1
        logger.info("claims archived count=%d before=%s", moved, before.isoformat())
        return moved
