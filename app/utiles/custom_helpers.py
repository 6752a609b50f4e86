import random
import string
from datetime import datetime, timezone, date
from uuid import uuid4

from app.core.config import SHIPMENT_ID_PREFIX


# ----------------------------
# Helpers
# ----------------------------
def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _to_utc_datetime_from_date(d: date) -> datetime:
    if isinstance(d, datetime):
        return d if d.tzinfo else d.replace(tzinfo=timezone.utc)
    return datetime(d.year, d.month, d.day, 0, 0, 0, tzinfo=timezone.utc)


def _normalize_id(s: str) -> str:
    return s.strip()


def _gen_id() -> str:
    return uuid4().hex


def _gen_shipment_id() -> str:
    # SHP + epoch millis + 6 random chars, e.g. SHP1718000000000X7K2QD
    millis = int(_now_utc().timestamp() * 1000)
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=6))
    return f"{SHIPMENT_ID_PREFIX}{millis}{suffix}"
