"""Throwaway account credentials under the reserved OTP-bypass domain."""
from __future__ import annotations

import re
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict

from practice_e2e.config import settings

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_lock = threading.Lock()
# stamp -> times issued in this process
_issued_stamps: Dict[str, int] = {}


@dataclass(frozen=True)
class Credential:
    email: str
    password: str

    def __repr__(self) -> str:
        return f"Credential(email={self.email!r}, password='***')"


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email))


def _unique_stamp(now: datetime) -> str:
    """Second-resolution timestamp, suffixed whenever it was already issued."""
    stamp = now.strftime("%Y%m%d%H%M%S")
    with _lock:
        count = _issued_stamps.get(stamp, 0)
        _issued_stamps[stamp] = count + 1
    return f"{stamp}-{count}" if count else stamp


def generate_test_email(domain: str | None = None, now: datetime | None = None) -> str:
    """Generate a unique test email: e2e-test-YYYYMMDDHHMMSS@<bypass domain>."""
    stamp = _unique_stamp(now or datetime.now(timezone.utc))
    return f"e2e-test-{stamp}@{domain or settings.bypass_domain}"


def generate_test_password() -> str:
    return f"TestPass{int(time.time() * 1000)}!"


def generate_credential(domain: str | None = None) -> Credential:
    return Credential(email=generate_test_email(domain), password=generate_test_password())
