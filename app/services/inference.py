# inference.py
"""원격 모델 aiohttp 클라이언트: 객체 탐지, CLIP 이미지 임베딩, 문장 텍스트 임베딩.

공개 코루틴은 예외 대신 degrade: detector는 ``[]``, 임베딩은 ``None`` 반환.
실패는 ``inference`` 로거에 기록.
"""
from __future__ import annotations

import io
import time
from typing import Any, List, Optional

import aiohttp
import numpy as np
from aiohttp import ClientResponse
from PIL import Image, ImageFile, ImageOps, UnidentifiedImageError

from app.domain.errors import ExternalServiceUnavailable
from app.scripts.logging_config import get_logger, log_inference_call
from app.services.detection import CenterBox, DetectedObject, from_extents, to_corner
from config import settings

ImageFile.LOAD_TRUNCATED_IMAGES = True
MIN_SIDE = 8
USER_AGENT = "Mozilla/5.0 (compatible; LostFoundMatcher/1.0)"
ROBOFLOW_MODEL_NAME = "roboflow-stationery"

logger = get_logger("inference")


# ------------------------------------------------------------
# 응답 파싱 (순수 함수)
# ------------------------------------------------------------
def parse_huggingface_detections(payload: Any, model_id: str) -> List[DetectedObject]:
    """``[{label, score, box{xmin,ymin,xmax,ymax}}]`` -> 좌상단 박스."""
    if not isinstance(payload, list):
        return []
    objects: List[DetectedObject] = []
    for row in payload:
        box = row.get("box") or {}
        try:
            bbox = from_extents(box["xmin"], box["ymin"], box["xmax"], box["ymax"])
        except KeyError:
            continue
        objects.append(DetectedObject(
            label=str(row.get("label", "")).lower(),
            confidence=float(row.get("score", 0.0)),
            bbox=bbox,
            source_model=model_id,
        ))
    return objects


def parse_roboflow_predictions(payload: Any) -> List[DetectedObject]:
    """``outputs[0].predictions[{class, confidence, x, y, width, height}]`` (중심 박스). 키 빠진 행은 건너뜀."""
    if not isinstance(payload, dict):
        return []
    outputs = payload.get("outputs") or []
    predictions = (outputs[0] or {}).get("predictions") or [] if outputs else []
    objects: List[DetectedObject] = []
    for p in predictions:
        try:
            box = CenterBox(p["x"], p["y"], p["width"], p["height"])
        except (KeyError, TypeError):
            continue
        objects.append(DetectedObject(
            label=str(p.get("class", "")).lower(),
            confidence=float(p.get("confidence", 0.0)),
            bbox=to_corner(box),
            source_model=ROBOFLOW_MODEL_NAME,
        ))
    return objects


def parse_embedding(payload: Any) -> Optional[List[float]]:
    """feature-extraction 출력은 1차원 또는 토큰별 중첩. 중첩이면 mean-pool."""
    try:
        arr = np.asarray(payload, dtype="float32")
    except (TypeError, ValueError):
        return None
    if arr.size == 0:
        return None
    if arr.ndim > 1:
        arr = arr.reshape(-1, arr.shape[-1]).mean(axis=0)
    return arr.tolist()


def image_ok(data: bytes) -> bool:
    """Pillow로 열 수 있는지만 확인."""
    try:
        with Image.open(io.BytesIO(data)) as im:
            im = ImageOps.exif_transpose(im)
            if getattr(im, "is_animated", False):
                im.seek(0)
            w, h = im.size
            return w >= MIN_SIDE and h >= MIN_SIDE
    except (UnidentifiedImageError, OSError, ValueError):
        return False


# ------------------------------------------------------------
# 세션 소유자
# ------------------------------------------------------------
class InferenceClient:
    """원격 모델 호출 전체가 공유하는 aiohttp 세션 1개.

    ``async with InferenceClient() as client:`` 로 사용.
    """

    def __init__(self, timeout_seconds: Optional[float] = None,
                 huggingface_url: Optional[str] = None, huggingface_key: Optional[str] = None,
                 max_image_bytes: Optional[int] = None):
        self.timeout_seconds = timeout_seconds or settings.INFERENCE_TIMEOUT_SECONDS
        self.huggingface_url = (huggingface_url or settings.HUGGINGFACE_API_URL).rstrip("/")
        self.huggingface_key = huggingface_key if huggingface_key is not None else settings.HUGGINGFACE_API_KEY
        self.max_image_bytes = max_image_bytes or settings.MAX_IMAGE_BYTES
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        self.session = aiohttp.ClientSession(timeout=timeout, headers={"User-Agent": USER_AGENT})
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            await self.session.close()
            self.session = None

    def _require_session(self) -> aiohttp.ClientSession:
        if self.session is None:
            raise RuntimeError("InferenceClient used outside 'async with'")
        return self.session

    def _hf_headers(self, content_type: str) -> dict:
        headers = {"Content-Type": content_type}
        if self.huggingface_key:
            headers["Authorization"] = f"Bearer {self.huggingface_key}"
        return headers

    async def _read_limited(self, resp: ClientResponse) -> Optional[bytes]:
        total = 0
        chunks = []
        async for chunk in resp.content.iter_chunked(64 * 1024):
            total += len(chunk)
            if total > self.max_image_bytes:
                logger.warning("image too large (%d > %d)", total, self.max_image_bytes)
                return None
            chunks.append(chunk)
        return b"".join(chunks)

    async def _post(self, service: str, url: str, **kwargs) -> Any:
        """POST 후 JSON 디코드. 실패 시 ExternalServiceUnavailable."""
        session = self._require_session()
        t0 = time.time()
        try:
            async with session.post(url, **kwargs) as resp:
                if resp.status != 200:
                    raise ExternalServiceUnavailable(f"{service} http {resp.status}")
                payload = await resp.json(content_type=None)
        except ExternalServiceUnavailable as e:
            log_inference_call(service, url, False, error=str(e))
            raise
        except Exception as e:
            log_inference_call(service, url, False, error=repr(e))
            raise ExternalServiceUnavailable(f"{service}: {e!r}") from e
        log_inference_call(service, url, True, duration_ms=(time.time() - t0) * 1000)
        return payload

    # --------------------------- public ---------------------------
    async def fetch_image(self, url: str) -> Optional[bytes]:
        session = self._require_session()
        try:
            async with session.get(url, allow_redirects=True) as resp:
                if resp.status != 200:
                    logger.warning("image download failed url=%s status=%s", url, resp.status)
                    return None
                data = await self._read_limited(resp)
        except Exception as e:
            logger.warning("image download failed url=%s err=%r", url, e)
            return None
        if not data or not image_ok(data):
            logger.warning("image unreadable url=%s", url)
            return None
        return data

    async def embed_image(self, image_bytes: Optional[bytes], model_id: Optional[str] = None) -> Optional[List[float]]:
        if not image_bytes:
            return None
        model_id = model_id or settings.IMAGE_EMBEDDING_MODEL
        try:
            payload = await self._post(
                "image_embedding", f"{self.huggingface_url}/{model_id}",
                data=image_bytes, headers=self._hf_headers("application/octet-stream"),
            )
        except ExternalServiceUnavailable:
            return None
        return parse_embedding(payload)

    async def embed_text(self, text: str, model_id: Optional[str] = None) -> Optional[List[float]]:
        if not text or not self.huggingface_key:
            return None
        model_id = model_id or settings.TEXT_EMBEDDING_MODEL
        try:
            payload = await self._post(
                "text_embedding", f"{self.huggingface_url}/{model_id}",
                json={"inputs": text}, headers=self._hf_headers("application/json"),
            )
        except ExternalServiceUnavailable:
            return None
        return parse_embedding(payload)


# ------------------------------------------------------------
# 탐지 모델
# ------------------------------------------------------------
class HuggingFaceDetector:
    def __init__(self, client: InferenceClient, model_id: str):
        self.client = client
        self.model_id = model_id
        self.name = model_id

    async def detect(self, image_url: str, image_bytes: Optional[bytes]) -> List[DetectedObject]:
        if not image_bytes:
            return []
        try:
            payload = await self.client._post(
                "detector", f"{self.client.huggingface_url}/{self.model_id}",
                data=image_bytes, headers=self.client._hf_headers("application/octet-stream"),
            )
        except ExternalServiceUnavailable:
            return []
        return parse_huggingface_detections(payload, self.model_id)


class RoboflowDetector:
    name = ROBOFLOW_MODEL_NAME

    def __init__(self, client: InferenceClient, api_url: Optional[str] = None, api_key: Optional[str] = None):
        self.client = client
        self.api_url = api_url or settings.ROBOFLOW_API_URL
        self.api_key = api_key if api_key is not None else settings.ROBOFLOW_API_KEY

    async def detect(self, image_url: str, image_bytes: Optional[bytes]) -> List[DetectedObject]:
        if not self.api_key:
            return []
        body = {
            "api_key": self.api_key,
            "inputs": {"image": {"type": "url", "value": image_url}},
        }
        try:
            payload = await self.client._post("detector", self.api_url, json=body)
        except ExternalServiceUnavailable:
            return []
        return parse_roboflow_predictions(payload)


def detector_model_ids() -> List[str]:
    return [m.strip() for m in settings.DETECTOR_MODELS.split(",") if m.strip()]


def build_detectors(client: InferenceClient) -> list:
    detectors: list = [HuggingFaceDetector(client, m) for m in detector_model_ids()]
    detectors.append(RoboflowDetector(client))
    return detectors
