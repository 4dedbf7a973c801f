from collections import deque
import itertools
import logging
import re
import sys
import threading
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger("storefront")


PROVIDERS = ("stripe", "fedex", "sendgrid", "storage")

SENSITIVE_KEYS = {
    "client_id", "client_secret", "access_token", "api_key", "secret_key",
    "authorization", "password", "webhook_secret", "stripe-signature",
}

_EMAIL_RE = re.compile(r"([A-Za-z0-9._%+-])[A-Za-z0-9._%+-]*@([A-Za-z0-9.-]+\.[A-Za-z]{2,})")


def mask_secret(value: Any) -> str:
    value = str(value)
    if len(value) > 8:
        return f"{value[:4]}...{value[-4:]}"
    return "***"


def mask_emails(text: str) -> str:
    """``buyer@example.com`` -> ``b***@example.com``."""
    return _EMAIL_RE.sub(r"\1***@\2", text)


def sanitize(data: Any) -> Any:
    if isinstance(data, dict):
        return {
            key: mask_secret(value) if str(key).lower() in SENSITIVE_KEYS else sanitize(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [sanitize(item) for item in data]
    if isinstance(data, str):
        return mask_emails(data)
    return data


class IntegrationLogger:
    """Bounded in-memory log of calls to external providers.

    Payments, carrier, email and storage adapters record one entry per
    call so admins can inspect recent provider traffic without shell
    access. Each provider has its own ring, so a burst of carrier
    tracking calls cannot push payment entries out. Credential-like keys
    and customer email addresses are masked before an entry is stored.
    """

    def __init__(self, max_logs_per_provider: int = 250):
        self.max_logs_per_provider = max_logs_per_provider
        self._seq = itertools.count(1)
        self._lock = threading.Lock()
        self._rings: Dict[str, Deque[Dict[str, Any]]] = self._empty_rings()

    def _empty_rings(self) -> Dict[str, Deque[Dict[str, Any]]]:
        return {name: deque(maxlen=self.max_logs_per_provider) for name in PROVIDERS}

    def log_event(
        self,
        provider: str,
        description: str,
        request_data: Optional[Dict[str, Any]] = None,
        response_data: Optional[Dict[str, Any]] = None,
        status: str = "info",
        error: Optional[str] = None
    ):
        if provider not in self._rings:
            raise ValueError(f"Unknown integration provider: {provider}")

        log_entry = {
            "id": next(self._seq),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "provider": provider,
            "description": mask_emails(description),
            "request_data": sanitize(request_data) if request_data else None,
            "response_data": sanitize(response_data) if response_data else None,
            "status": status,
            "error": mask_emails(error) if error else None
        }
        with self._lock:
            self._rings[provider].append(log_entry)

        log_msg = f"[{provider}] {log_entry['description']}"
        if error:
            logger.error(f"{log_msg} - Error: {log_entry['error']}")
        else:
            logger.info(log_msg)

        return log_entry

    def get_logs(self, limit: Optional[int] = None, provider: Optional[str] = None) -> List[Dict[str, Any]]:
        """Entries oldest first, optionally for one provider."""
        with self._lock:
            if provider:
                logs = list(self._rings.get(provider, ()))
            else:
                logs = sorted((e for ring in self._rings.values() for e in ring), key=lambda e: e["id"])
        if limit:
            return logs[-limit:]
        return logs

    def error_counts(self) -> Dict[str, int]:
        with self._lock:
            return {name: sum(1 for e in ring if e["status"] == "error") for name, ring in self._rings.items()}

    def clear_logs(self):
        with self._lock:
            self._rings = self._empty_rings()
        logger.info("Cleared integration logs")


integration_logger = IntegrationLogger()
