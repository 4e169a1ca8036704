import os
from typing import List, Optional


class Settings:
    def _split_csv(self, raw: str, *, default: List[str]) -> List[str]:
        parts = [p.strip() for p in (raw or "").split(",")]
        return [p for p in parts if p] or default

    def _env_int(self, name: str, default: int) -> int:
        raw = (os.getenv(name) or "").strip()
        if not raw:
            return default
        try:
            return int(raw)
        except Exception:
            return default

    def _env_limit(self, name: str) -> Optional[int]:
        # Empty means unlimited.
        raw = (os.getenv(name) or "").strip()
        if not raw:
            return None
        try:
            return max(0, int(raw))
        except Exception:
            return None

    def _env_bool(self, name: str, default: bool) -> bool:
        raw = (os.getenv(name) or "").strip().lower()
        if not raw:
            return default
        return raw in {"1", "true", "yes", "on"}

    def __init__(self) -> None:
        self.env = os.getenv('APP_ENV', 'local')
        self.db_url = os.getenv('DATABASE_URL', 'postgresql://localhost/retail_sync')
        # Comma-separated list of allowed CORS origins for browser/mobile clients.
        self.cors_origins = self._split_csv(
            os.getenv("CORS_ORIGINS", "").strip(),
            default=["http://localhost:3000", "http://127.0.0.1:3000"],
        )
        self.api_version = os.getenv("APP_VERSION", "0.1.0").strip() or "0.1.0"

        # Orders/vendor orders with identical content created this close together
        # are treated as client retries.
        self.duplicate_window_seconds = self._env_int("SYNC_DUPLICATE_WINDOW_SECONDS", 5)
        self.quota_enforced = self._env_bool("SYNC_QUOTA_ENFORCED", True)
        self.default_limits = {
            "customers": self._env_limit("SYNC_DEFAULT_LIMIT_CUSTOMERS"),
            "products": self._env_limit("SYNC_DEFAULT_LIMIT_PRODUCTS"),
            "orders": self._env_limit("SYNC_DEFAULT_LIMIT_ORDERS"),
        }
        self.alert_low_stock = self._env_int("SYNC_ALERT_LOW_STOCK", 10)
        self.alert_expiry_days = self._env_int("SYNC_ALERT_EXPIRY_DAYS", 7)


settings = Settings()
