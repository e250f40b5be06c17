# logging_config.py
import logging
import logging.config
import logging.handlers
from pathlib import Path
from datetime import datetime
import json
import contextvars

# 요청별 id (ContextVar)
_request_id_ctx = contextvars.ContextVar("request_id", default="-")

class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id_ctx.get("-")
        return True

def set_request_id(req_id: str):
    _request_id_ctx.set(req_id)

def get_request_id() -> str:
    return _request_id_ctx.get("-")

def get_logger(name: str = __name__) -> logging.Logger:
    return logging.getLogger(name)

LOG_DIR = Path("logs")

# 관심사별 로거, 각자 일 단위 로테이션 파일
CONCERN_LOGGERS = ("matching", "fraud", "inference")


def _file_handler(filename: str) -> dict:
    return {
        "class": "logging.handlers.TimedRotatingFileHandler",
        "level": "INFO",
        "formatter": "default",
        "filters": ["request_id"],
        "filename": str(LOG_DIR / filename),
        "when": "midnight",
        "interval": 1,
        "backupCount": 30,
        "encoding": "utf-8",
    }


def build_dict_config(json_fmt: bool = False) -> dict:
    fmt = (
        '{"ts":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s",'
        '"request_id":"%(request_id)s","msg":"%(message)s"}'
        if json_fmt
        else '%(asctime)s | %(levelname)s | %(name)s | rid=%(request_id)s | %(message)s'
    )

    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": "INFO",
            "formatter": "default",
            "filters": ["request_id"],
        },
        "file_app": _file_handler("app.log"),
    }
    loggers = {
        # root: 나머지 전부
        "": {
            "level": "INFO",
            "handlers": ["console", "file_app"],
        },
        "uvicorn": {"level": "INFO"},
        "uvicorn.error": {"level": "INFO"},
        "uvicorn.access": {"level": "INFO"},
    }
    for name in CONCERN_LOGGERS:
        handlers[f"file_{name}"] = _file_handler(f"{name}.log")
        loggers[name] = {
            "level": "INFO",
            "handlers": ["console", f"file_{name}"],
            "propagate": False,
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_id": {"()": RequestIdFilter},
        },
        "formatters": {
            "default": {
                "format": fmt,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            }
        },
        "handlers": handlers,
        "loggers": loggers,
    }

def setup_logging(json_fmt: bool = False):
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(build_dict_config(json_fmt=json_fmt))

# ===== 구조화 이벤트 헬퍼 =====
def log_match_event(event_type: str, details: dict, logger: logging.Logger | None = None):
    logger = logger or get_logger("matching")
    logger.info("MATCH_EVENT: %s", json.dumps({
        "timestamp": datetime.now().isoformat(),
        "event_type": event_type,
        "details": details
    }, ensure_ascii=False, default=str))

def log_fraud_event(event_type: str, details: dict, logger: logging.Logger | None = None):
    logger = logger or get_logger("fraud")
    logger.info("FRAUD_EVENT: %s", json.dumps({
        "timestamp": datetime.now().isoformat(),
        "event_type": event_type,
        "details": details
    }, ensure_ascii=False, default=str))

def log_inference_call(service: str, target: str, success: bool,
                       duration_ms: float | None = None, error: str | None = None,
                       logger: logging.Logger | None = None):
    logger = logger or get_logger("inference")
    if success:
        logger.info("inference ok service=%s target=%s ms=%.1f", service, target, duration_ms or 0.0)
    else:
        logger.warning("inference failed service=%s target=%s err=%s", service, target, error)

def log_batch_summary(batch_name: str, batch_info: dict, logger: logging.Logger | None = None):
    logger = logger or get_logger("matching")
    summary = {
        'batch': batch_name,
        'total_processed': batch_info.get('processed', 0),
        'matched_count': batch_info.get('matched', 0),
        'suspicious_count': batch_info.get('suspicious', 0),
        'error_count': batch_info.get('errors', 0),
        'duration_seconds': batch_info.get('duration', 0),
    }
    logger.info("batch complete: %s", json.dumps(summary, ensure_ascii=False))
