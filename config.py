"""
config.py - Environment-driven settings for the storefront admin backend.

Values are read once from the process environment (a local `.env` file is
loaded first when present) and handed to the app factory as a frozen
`Settings` instance.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

UPDATE_MISSING_IGNORE = "ignore"
UPDATE_MISSING_NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str] = None
    database_name: Optional[str] = None
    upload_dir: str = "uploads"
    public_base_url: Optional[str] = None
    # What PUT /api/update_product/{id} does when the id does not exist
    update_missing_product: str = UPDATE_MISSING_IGNORE
    order_id_max_attempts: int = 5
    log_level: str = "INFO"
    log_file: Optional[str] = "storefront_admin.log"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        update_missing = os.getenv("UPDATE_MISSING_PRODUCT", UPDATE_MISSING_IGNORE).strip().lower()
        if update_missing not in (UPDATE_MISSING_IGNORE, UPDATE_MISSING_NOT_FOUND):
            raise ValueError(f"UPDATE_MISSING_PRODUCT must be 'ignore' or 'not_found', got {update_missing!r}")

        return cls(
            database_url=os.getenv("DATABASE_URL"),
            database_name=os.getenv("DATABASE_NAME"),
            upload_dir=os.getenv("UPLOAD_DIR", "uploads"),
            public_base_url=os.getenv("PUBLIC_BASE_URL") or None,
            update_missing_product=update_missing,
            order_id_max_attempts=max(1, int(os.getenv("ORDER_ID_MAX_ATTEMPTS", "5"))),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_file=os.getenv("LOG_FILE", "storefront_admin.log") or None,
            port=int(os.getenv("PORT", 8000)),
        )
