"""Batch entry points for cron: bulk matching, claim resolution, claim archiving.

    python -m app.scripts.run_pipeline match-all
    python -m app.scripts.run_pipeline batch --limit 200
    python -m app.scripts.run_pipeline claims
    python -m app.scripts.run_pipeline archive --days 365
"""
from __future__ import annotations

import argparse
import json
import sys

import firebase_admin
from firebase_admin import credentials

from app.scripts.logging_config import get_logger, setup_logging
from app.services.bulk_matcher import BulkMatcher
from app.services.claim_resolver import ClaimResolver
from app.services.claim_store import FirestoreClaimStore, InMemoryClaimStore
from app.services.item_store import FirestoreItemStore, InMemoryItemStore
from app.services.match_store import FirestoreMatchStore, InMemoryMatchStore
from config import settings

logger = get_logger("pipeline")


def build_stores(backend: str | None = None):
    backend = (backend or settings.STORE_BACKEND).lower()
    if backend == "memory":
        return InMemoryItemStore(), InMemoryClaimStore(), InMemoryMatchStore()
    if not firebase_admin._apps:
        if settings.FIREBASE_CREDENTIALS_JSON_STRING:
            cred = credentials.Certificate(json.loads(settings.FIREBASE_CREDENTIALS_JSON_STRING))
        else:
            cred = credentials.Certificate(settings.GOOGLE_APPLICATION_CREDENTIALS or "firebase-credentials.json")
        firebase_admin.initialize_app(cred)
    return FirestoreItemStore(), FirestoreClaimStore(), FirestoreMatchStore()


def run(command: str, stores, limit: int = 100, days: int | None = None) -> dict:
    items, claims, matches = stores
    if command == "match-all":
        summary = BulkMatcher(items, matches).match_all()
        return summary.model_dump(mode="json")
    if command == "batch":
        return BulkMatcher(items, matches).batch_process_items(limit=limit).model_dump()
    if command == "claims":
        return ClaimResolver(items, claims).process_all()
    if command == "archive":
        return ClaimResolver(items, claims).archive_terminal_claims(older_than_days=days)
    raise ValueError(f"unknown command: {command}")


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="분실물 매칭 / 클레임 배치 실행")
    p.add_argument("command", choices=["match-all", "batch", "claims", "archive"])
    p.add_argument("--limit", type=int, default=100, help="batch: 처리할 최대 아이템 수")
    p.add_argument("--days", type=int, default=None, help="archive: 보존 기간(일), 기본은 CLAIM_RETENTION_DAYS")
    p.add_argument("--backend", default=None, help="memory | firestore (기본: STORE_BACKEND)")
    p.add_argument("--json-logs", action="store_true")
    return p.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(json_fmt=args.json_logs)
    try:
        result = run(args.command, build_stores(args.backend), limit=args.limit, days=args.days)
    except Exception as e:
        logger.exception("pipeline %s failed: %s", args.command, e)
        return 1
    print(json.dumps(result, ensure_ascii=False, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
