import json
import math
import secrets
from datetime import date, datetime, timezone
from decimal import Decimal

TOKEN_PREFIX = "psp_"


def new_session_token() -> str:
    return TOKEN_PREFIX + secrets.token_hex(16)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def normalize_locker_id(locker_id: str) -> str:
    return locker_id.strip().upper()


def json_default(o):
    if isinstance(o, Decimal):
        return float(o)
    if isinstance(o, (date, datetime)):
        return o.isoformat()
    return str(o)


def json_dumps(obj) -> str:
    return json.dumps(obj, ensure_ascii=False, default=json_default)
