from __future__ import annotations

import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from app.models.matching import MatchRecord, MatchStatus
from app.scripts.logging_config import get_logger
from . import item_store  # reuse Firestore client

logger = get_logger("match_store")

# Firestore 구조
# ai_matches/{match_id}  { lost_item_id, found_item_id, category, similarity_score, components{...}, status, generated_at }
MATCHES_COLLECTION = "ai_matches"


class InMemoryMatchStore:
    def __init__(self, records: Iterable[MatchRecord] = ()):
        self._lock = threading.RLock()
        self._records: Dict[str, MatchRecord] = {}
        for r in records:
            self.save(r)

    def get(self, match_id: str) -> Optional[MatchRecord]:
        with self._lock:
            r = self._records.get(match_id)
            return r.model_copy(deep=True) if r else None

    def save(self, record: MatchRecord) -> MatchRecord:
        with self._lock:
            self._records[record.id] = record.model_copy(deep=True)
        return record

    def find_pair(self, lost_item_id: str, found_item_id: str) -> Optional[MatchRecord]:
        with self._lock:
            for r in self._records.values():
                if r.lost_item_id == lost_item_id and r.found_item_id == found_item_id:
                    return r.model_copy(deep=True)
        return None

    def all(self) -> List[MatchRecord]:
        with self._lock:
            rows = [r.model_copy(deep=True) for r in self._records.values()]
        rows.sort(key=lambda r: r.generated_at)
        return rows

    def in_window(self, start: datetime, end: datetime) -> List[MatchRecord]:
        return [r for r in self.all() if start <= r.generated_at <= end]

    def update_status(self, match_id: str, status: MatchStatus, decided_by: Optional[str] = None) -> None:
        with self._lock:
            r = self._records.get(match_id)
            if r is not None:
                self._records[match_id] = r.model_copy(update={"status": MatchStatus(status), "decided_by": decided_by})


class FirestoreMatchStore:
    def __init__(self, db=None):
        self._db = db

    def _collection(self):
        return (self._db or item_store.get_db()).collection(MATCHES_COLLECTION)

    @staticmethod
    def _to_doc(record: MatchRecord) -> dict:
        doc = record.model_dump(mode="json", exclude={"id"}, by_alias=True)
        doc["generated_at"] = record.generated_at
        return doc

    @staticmethod
    def _from_snapshot(snap) -> MatchRecord:
        data = snap.to_dict() or {}
        data["id"] = snap.id
        return MatchRecord.model_validate(data)

    def _stream(self, query) -> List[MatchRecord]:
        rows: List[MatchRecord] = []
        for snap in query.stream():
            try:
                rows.append(self._from_snapshot(snap))
            except Exception as e:
                logger.warning("skip malformed match doc=%s err=%s", snap.id, e)
        rows.sort(key=lambda r: r.generated_at)
        return rows

    def get(self, match_id: str) -> Optional[MatchRecord]:
        snap = self._collection().document(match_id).get()
        if not snap.exists:
            return None
        return self._from_snapshot(snap)

    def save(self, record: MatchRecord) -> MatchRecord:
        self._collection().document(record.id).set(self._to_doc(record))
        logger.info("firestore.write op=set doc=%s/%s score=%d", MATCHES_COLLECTION, record.id, record.similarity_score)
        return record

    def find_pair(self, lost_item_id: str, found_item_id: str) -> Optional[MatchRecord]:
        query = (self._collection()
                 .where("lost_item_id", "==", lost_item_id)
                 .where("found_item_id", "==", found_item_id)
                 .limit(1))
        rows = self._stream(query)
        return rows[0] if rows else None

    def all(self) -> List[MatchRecord]:
        return self._stream(self._collection())

    def in_window(self, start: datetime, end: datetime) -> List[MatchRecord]:
        query = (self._collection()
                 .where("generated_at", ">=", start)
                 .where("generated_at", "<=", end))
        return self._stream(query)

    def update_status(self, match_id: str, status: MatchStatus, decided_by: Optional[str] = None) -> None:
        self._collection().document(match_id).update({
            "status": MatchStatus(status).value,
            "decided_by": decided_by,
        })
