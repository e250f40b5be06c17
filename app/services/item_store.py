from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Optional

from firebase_admin import firestore
from pydantic import BaseModel

from app.models.items import AiMetadata, Item, ItemStatus, OPEN_STATUSES, SubmissionType
from app.scripts.logging_config import get_logger

logger = get_logger("item_store")

_db = None

def get_db():
    global _db
    if _db is None:
        _db = firestore.client()
    return _db

# Firestore 구조
# items/{item_id}  { tracking_id, submission_type, category, ..., ai_metadata{...} }
ITEMS_COLLECTION = "items"

_DATETIME_FIELDS = ("lost_or_found_at", "reported_at")


def _status_values(statuses: Optional[Iterable[ItemStatus]]) -> Optional[List[str]]:
    if statuses is None:
        return None
    return [ItemStatus(s).value for s in statuses]


def _matches(item: Item, submission_type: Optional[SubmissionType], category: Optional[str],
             statuses: Optional[List[str]], zone_id: Optional[str]) -> bool:
    if submission_type is not None and item.submission_type != submission_type:
        return False
    if category is not None and item.category != category:
        return False
    if statuses is not None and item.status.value not in statuses:
        return False
    if zone_id is not None and item.location.zone_id != zone_id:
        return False
    return True


class InMemoryItemStore:
    """테스트/로컬 실행용 dict 기반 저장소. 항상 복사본 반환."""

    def __init__(self, items: Iterable[Item] = ()):
        self._lock = threading.RLock()
        self._items: Dict[str, Item] = {}
        for item in items:
            self.save(item)

    def get(self, item_id: str) -> Optional[Item]:
        with self._lock:
            item = self._items.get(item_id)
            return item.model_copy(deep=True) if item else None

    def save(self, item: Item) -> Item:
        with self._lock:
            self._items[item.id] = item.model_copy(deep=True)
        return item

    def find(self, submission_type: Optional[SubmissionType] = None, category: Optional[str] = None,
             statuses: Optional[Iterable[ItemStatus]] = None, zone_id: Optional[str] = None,
             limit: Optional[int] = None) -> List[Item]:
        wanted = _status_values(statuses)
        with self._lock:
            rows = [i.model_copy(deep=True) for i in self._items.values()
                    if _matches(i, submission_type, category, wanted, zone_id)]
        rows.sort(key=lambda i: i.reported_at, reverse=True)
        return rows[:limit] if limit else rows

    def update_ai_metadata(self, item_id: str, fields: dict) -> None:
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                return
            merged = AiMetadata.model_validate({**item.ai_metadata.model_dump(), **fields})
            self._items[item_id] = item.model_copy(update={"ai_metadata": merged}, deep=True)

    def update_status(self, item_id: str, status: ItemStatus) -> None:
        with self._lock:
            item = self._items.get(item_id)
            if item is not None:
                self._items[item_id] = item.model_copy(update={"status": ItemStatus(status)}, deep=True)


class FirestoreItemStore:
    def __init__(self, db=None):
        self._db = db

    def _collection(self):
        return (self._db or get_db()).collection(ITEMS_COLLECTION)

    @staticmethod
    def _to_doc(item: Item) -> dict:
        doc = item.model_dump(mode="json", exclude={"id"})
        for f in _DATETIME_FIELDS:
            doc[f] = getattr(item, f)
        return doc

    @staticmethod
    def _from_snapshot(snap) -> Item:
        data = snap.to_dict() or {}
        data["id"] = snap.id
        return Item.model_validate(data)

    def get(self, item_id: str) -> Optional[Item]:
        snap = self._collection().document(item_id).get()
        if not snap.exists:
            return None
        return self._from_snapshot(snap)

    def save(self, item: Item) -> Item:
        self._collection().document(item.id).set(self._to_doc(item))
        logger.info("firestore.write op=set doc=%s/%s", ITEMS_COLLECTION, item.id)
        return item

    def find(self, submission_type: Optional[SubmissionType] = None, category: Optional[str] = None,
             statuses: Optional[Iterable[ItemStatus]] = None, zone_id: Optional[str] = None,
             limit: Optional[int] = None) -> List[Item]:
        query = self._collection()
        if submission_type is not None:
            query = query.where("submission_type", "==", SubmissionType(submission_type).value)
        if category is not None:
            query = query.where("category", "==", category)
        wanted = _status_values(statuses)
        if wanted is not None:
            query = query.where("status", "in", wanted)
        if zone_id is not None:
            query = query.where("location.zone_id", "==", zone_id)
        if limit:
            query = query.limit(limit)

        items: List[Item] = []
        for snap in query.stream():
            try:
                items.append(self._from_snapshot(snap))
            except Exception as e:
                logger.warning("skip malformed item doc=%s err=%s", snap.id, e)
        return items

    def update_ai_metadata(self, item_id: str, fields: dict) -> None:
        updates = {
            f"ai_metadata.{k}": v.model_dump(mode="json") if isinstance(v, BaseModel) else v
            for k, v in fields.items()
        }
        self._collection().document(item_id).update(updates)
        logger.info("firestore.write op=update doc=%s/%s fields=%s", ITEMS_COLLECTION, item_id, sorted(fields))

    def update_status(self, item_id: str, status: ItemStatus) -> None:
        self._collection().document(item_id).update({"status": ItemStatus(status).value})
        logger.info("firestore.write op=update doc=%s/%s status=%s", ITEMS_COLLECTION, item_id, ItemStatus(status).value)


def open_items(store, submission_type: SubmissionType, category: Optional[str] = None) -> List[Item]:
    return store.find(submission_type=submission_type, category=category, statuses=OPEN_STATUSES)
