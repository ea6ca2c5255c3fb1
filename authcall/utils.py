import os
import re
import json
import datetime as dt
import logging
from logging.handlers import TimedRotatingFileHandler
from typing import Optional

from jsonschema import validate, Draft202012Validator
from jsonschema.exceptions import ValidationError

# ---------- Config validation ----------

SCHEMA_PATH = os.path.join(os.path.dirname(__file__), "schemas", "config.schema.json")

def load_file(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()

def validate_config(cfg: dict):
    schema = json.loads(load_file(SCHEMA_PATH))
    try:
        validate(instance=cfg, schema=schema, cls=Draft202012Validator)
    except ValidationError as e:
        raise ValueError(f"Config validation error: {e.message} at {list(e.path)}") from e

# ---------- Response body helpers ----------

def read_body(body: Optional[bytes], encoding: Optional[str] = None) -> Optional[str]:
    """Decode a response body for diagnostics; None when it cannot be decoded."""
    if body is None:
        return None
    try:
        return body.decode(encoding or "utf-8")
    except (UnicodeDecodeError, LookupError) as e:
        get_logger(__name__).error("Client Bad Request and response body processing failed: %s", e)
        return None

# ---------- Logging ----------

_LOGGER_INITIALIZED = False

class JsonFormatter(logging.Formatter):
    def format(self, record):
        payload = {
            "ts": dt.datetime.fromtimestamp(record.created, dt.timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)

def _build_logger():
    global _LOGGER_INITIALIZED
    if _LOGGER_INITIALIZED:
        return

    level = os.getenv("LOG_LEVEL", "INFO").upper()
    log_dir = os.getenv("LOG_DIR", "logs")
    json_mode = os.getenv("LOG_JSON", "false").lower() == "true"

    os.makedirs(log_dir, exist_ok=True)
    logger = logging.getLogger()
    logger.setLevel(getattr(logging, level, logging.INFO))

    ch = logging.StreamHandler()
    ch.setLevel(logger.level)

    fh = TimedRotatingFileHandler(os.path.join(log_dir, "authcall.log"), when="D", backupCount=7, encoding="utf-8")
    fh.setLevel(logger.level)

    if json_mode:
        fmt = JsonFormatter()
    else:
        fmt = logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")

    ch.setFormatter(fmt)
    fh.setFormatter(fmt)
    logger.addHandler(ch)
    logger.addHandler(fh)

    _LOGGER_INITIALIZED = True

def get_logger(name: str = None) -> logging.Logger:
    _build_logger()
    return logging.getLogger(name if name else __name__)

# ---------- Secret redaction ----------

SECRET_ENV_KEYS = ["AUTHCALL_API_KEY", "AUTHCALL_ACCESS_TOKEN"]

def redact_secrets(s: str, extra: Optional[list] = None) -> str:
    """Redact sensitive information from strings for safe logging."""
    if not s:
        return s

    redacted = s
    for k in SECRET_ENV_KEYS:
        v = os.getenv(k)
        if v and len(v) > 3:
            redacted = redacted.replace(v, "***")
    for v in extra or []:
        if v and len(v) > 3:
            redacted = redacted.replace(v, "***")

    redacted = re.sub(r"(?i)bearer\s+[A-Za-z0-9\-._~+/]+=*", "Bearer ***", redacted)
    redacted = re.sub(r'(?i)("?(?:access_?token|apikey|api_key)"?\s*[:=]\s*"?)[^",\s]+', r"\1***", redacted)

    return redacted
