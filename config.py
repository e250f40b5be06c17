from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env.local", env_file_encoding="utf-8", extra="ignore")

    # Firebase
    GOOGLE_APPLICATION_CREDENTIALS: Optional[str] = None
    FIREBASE_CREDENTIALS_JSON_STRING: Optional[str] = None
    # memory | firestore (memory는 로컬 실행/테스트용)
    STORE_BACKEND: str = "firestore"

    # 원격 추론 (HuggingFace inference API + Roboflow workflow)
    HUGGINGFACE_API_URL: str = "https://api-inference.huggingface.co/models"
    HUGGINGFACE_API_KEY: Optional[str] = None
    ROBOFLOW_API_URL: str = "https://serverless.roboflow.com/ai-gym/workflows/stationaryclassification"
    ROBOFLOW_API_KEY: Optional[str] = None
    DETECTOR_MODELS: str = "IndUSV/yoloV8_SE_3,IndUSV/Yolov8_Screen_Detection,IndUSV/computerApparatus-detector"
    IMAGE_EMBEDDING_MODEL: str = "laion/CLIP-ViT-B-32-laion2B-s34B-b79K"
    TEXT_EMBEDDING_MODEL: str = "sentence-transformers/all-MiniLM-L6-v2"
    INFERENCE_TIMEOUT_SECONDS: float = 20.0
    MAX_IMAGE_BYTES: int = 15 * 1024 * 1024

    # 쌍 유사도 가중치 (일괄 공식). 위치/시간 기본 0: 설명 문구 전용
    MATCH_WEIGHT_EMBEDDING: float = 0.5
    MATCH_WEIGHT_TEXT: float = 0.3
    MATCH_WEIGHT_CLASS: float = 0.2
    MATCH_WEIGHT_LOCATION: float = 0.0
    MATCH_WEIGHT_TIME: float = 0.0
    MATCH_MIN_SCORE: int = 30
    MATCH_AUTO_APPROVE: int = 85
    MATCH_PARTIAL: int = 50

    # 클레임 점수 임계값
    CLAIM_AUTO_AWARD_THRESHOLD: int = 85
    CLAIM_MINIMUM_CONFIDENCE_GAP: int = 15
    CLAIM_MIN_PROOF_LENGTH: int = 20
    CLAIM_GOOD_PROOF_LENGTH: int = 100
    CLAIM_MAX_REJECTION_PENALTY: int = 30
    CLAIM_REJECTIONS_FOR_MAX_PENALTY: int = 5
    CLAIM_SUSPICIOUS_THRESHOLD: int = 40
    CLAIM_CRITICAL_THRESHOLD: int = 60
    CLAIM_SIMILAR_WINDOW_DAYS: int = 30
    CLAIM_RETENTION_DAYS: int = 365

    # 배치 트리거 제한
    TRIGGER_MAX_REQUESTS: int = 5
    TRIGGER_WINDOW_SECONDS: int = 60 * 60


settings = Settings()
