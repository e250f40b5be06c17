# main.py
import json
import uuid
from contextlib import asynccontextmanager
from time import time

import firebase_admin
from fastapi import FastAPI, Request
from firebase_admin import credentials

from config import settings
from app.scripts.logging_config import setup_logging, get_logger, set_request_id

# 1) 로깅 설정(최우선)
# 운영 환경에서 JSON 로그를 원하면 json_fmt=True
setup_logging(json_fmt=False)
logger = get_logger(__name__)


# 2) Firebase 초기화 (firestore 백엔드일 때만)
def init_firebase() -> bool:
    if firebase_admin._apps:
        return True
    cred_obj = None
    try:
        if settings.FIREBASE_CREDENTIALS_JSON_STRING:
            cred_obj = credentials.Certificate(json.loads(settings.FIREBASE_CREDENTIALS_JSON_STRING))
            logger.info("Firebase credentials loaded from FIREBASE_CREDENTIALS_JSON_STRING.")
        elif settings.GOOGLE_APPLICATION_CREDENTIALS:
            cred_obj = credentials.Certificate(settings.GOOGLE_APPLICATION_CREDENTIALS)
            logger.info("Firebase credentials loaded from GOOGLE_APPLICATION_CREDENTIALS file.")

        if cred_obj:
            firebase_admin.initialize_app(cred_obj)
            logger.info("Firebase initialized successfully.")
            return True
        logger.warning("Firebase credentials not found. Firestore stores will fail on first use.")
    except Exception as e:
        logger.exception("Firebase initialization failed: %s", e)
    return False


if settings.STORE_BACKEND.lower() == "firestore":
    init_firebase()
else:
    logger.info("STORE_BACKEND=%s, skipping Firebase init", settings.STORE_BACKEND)

from app.api import analytics, claims, matching
from app.api.deps import get_item_store, get_throttle, get_vector_index


# 3) 수명주기: 벡터 인덱스 / 트리거 스로틀
@asynccontextmanager
async def lifespan(_app: FastAPI):
    overrides = _app.dependency_overrides
    index = overrides.get(get_vector_index, get_vector_index)().open()
    throttle = overrides.get(get_throttle, get_throttle)().open()
    try:
        index.rebuild(overrides.get(get_item_store, get_item_store)().find())
    except Exception as e:
        # 인덱스 없이도 매칭은 동작 (visual neighbours만 빈 결과)
        logger.warning("initial index rebuild failed: %s", e)
    logger.info("startup complete indexed=%d", len(index))
    try:
        yield
    finally:
        throttle.close()
        index.close()
        logger.info("shutdown complete")


# 4) FastAPI 앱
app = FastAPI(title="Lost & Found Matching API", lifespan=lifespan)


# 5) 요청 로깅 미들웨어
@app.middleware("http")
async def log_requests(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
    set_request_id(rid)

    start = time()
    path = request.url.path
    method = request.method
    query = request.url.query
    client_ip = getattr(request.client, 'host', '-') if request.client else '-'

    if query:
        logger.info("REQ start %s %s?%s ip=%s", method, path, query, client_ip)
    else:
        logger.info("REQ start %s %s ip=%s", method, path, client_ip)

    status = "NA"
    try:
        response = await call_next(request)
        status = response.status_code
        response.headers["X-Request-ID"] = rid
        return response
    finally:
        duration = (time() - start) * 1000
        logger.info("REQ end %s %s status=%s %.1fms", method, path, status, duration)


# 6) CORS (optional)
try:
    from fastapi.middleware.cors import CORSMiddleware
    allowed_origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "https://localhost:3000",
    ]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    logger.info("CORS middleware configured for %s", allowed_origins)
except Exception as e:
    logger.warning("CORS middleware not added: %s", e)

# 7) 라우터
app.include_router(matching.router)
app.include_router(claims.router)
app.include_router(analytics.router)


# 8) 엔드포인트
@app.get("/")
def root():
    return {"message": "lost & found matching backend", "routes": [
        "/matching/run",
        "/matching/batch",
        "/matching/quick",
        "/matching/items/{item_id}/best",
        "/matching/items/{item_id}/similar",
        "/matching/items/{item_id}/top",
        "/matching/items/{item_id}/visual",
        "/matching/items/{item_id}/enrich",
        "/matching/index/rebuild",
        "/matching/{match_id}/decision",
        "/claims/{claim_id}/risk",
        "/claims/items/{item_id}/preview",
        "/claims/items/{item_id}/process",
        "/claims/process-all",
        "/claims/archive",
        "/analytics/performance",
        "/analytics/accuracy",
        "/analytics/fraud",
        "/analytics/categories",
        "/analytics/thresholds",
    ]}
