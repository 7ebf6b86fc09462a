from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

ENV_FILE = Path(".env")

MIB = 1024 * 1024
# S3 rejects non-final multipart parts smaller than this
MIN_MULTIPART_PART_SIZE = 5 * MIB
# Per-request key cap of DeleteObjects, also used as the copy window ceiling
MAX_BATCH_ITEMS = 1000

ADDRESSING_STYLES: tuple[str, ...] = ("auto", "path", "virtual")
LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _load_env_file() -> None:
    if not ENV_FILE.exists():
        return
    for raw_line in ENV_FILE.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


@dataclass
class Settings:
    S3_ENDPOINT_URL: str | None = None
    S3_REGION: str = "us-east-1"
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None
    S3_ADDRESSING_STYLE: str = "auto"
    S3_USE_SSL: bool = True
    STORAGE_MULTIPART_PART_SIZE: int = MIN_MULTIPART_PART_SIZE
    STORAGE_MULTIPART_CONCURRENCY: int = 4
    STORAGE_DELETE_CHUNK_SIZE: int = MAX_BATCH_ITEMS
    STORAGE_COPY_WINDOW: int = MAX_BATCH_ITEMS
    STORAGE_READ_CHUNK_SIZE: int = MIB
    STORAGE_GET_URL_EXPIRES_SECONDS: int = 300
    STORAGE_PUT_URL_EXPIRES_SECONDS: int = 86400
    STORAGE_PART_URL_EXPIRES_SECONDS: int = 86400
    LOG_LEVEL: str = "INFO"

    def __post_init__(self) -> None:
        style = (self.S3_ADDRESSING_STYLE or "auto").strip().lower()
        if style not in ADDRESSING_STYLES:
            raise ValueError(
                f"S3_ADDRESSING_STYLE must be one of {', '.join(ADDRESSING_STYLES)}."
            )
        self.S3_ADDRESSING_STYLE = style
        self.LOG_LEVEL = (self.LOG_LEVEL or "INFO").strip().upper()
        if self.LOG_LEVEL not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}.")
        if self.STORAGE_MULTIPART_PART_SIZE < MIN_MULTIPART_PART_SIZE:
            raise ValueError(
                "STORAGE_MULTIPART_PART_SIZE must be at least 5 MiB "
                f"({MIN_MULTIPART_PART_SIZE} bytes)."
            )
        if self.STORAGE_MULTIPART_CONCURRENCY < 1:
            raise ValueError("STORAGE_MULTIPART_CONCURRENCY must be positive.")
        for name in ("STORAGE_DELETE_CHUNK_SIZE", "STORAGE_COPY_WINDOW"):
            value = getattr(self, name)
            if not 1 <= value <= MAX_BATCH_ITEMS:
                raise ValueError(f"{name} must be between 1 and {MAX_BATCH_ITEMS}.")
        for name in (
            "STORAGE_READ_CHUNK_SIZE",
            "STORAGE_GET_URL_EXPIRES_SECONDS",
            "STORAGE_PUT_URL_EXPIRES_SECONDS",
            "STORAGE_PART_URL_EXPIRES_SECONDS",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive.")

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        env = os.environ
        return cls(
            S3_ENDPOINT_URL=env.get("S3_ENDPOINT_URL") or None,
            S3_REGION=env.get("S3_REGION", cls.S3_REGION),
            S3_ACCESS_KEY_ID=env.get("S3_ACCESS_KEY_ID") or None,
            S3_SECRET_ACCESS_KEY=env.get("S3_SECRET_ACCESS_KEY") or None,
            S3_ADDRESSING_STYLE=env.get("S3_ADDRESSING_STYLE", cls.S3_ADDRESSING_STYLE),
            S3_USE_SSL=_as_bool(env.get("S3_USE_SSL"), cls.S3_USE_SSL),
            STORAGE_MULTIPART_PART_SIZE=_as_int(
                env.get("STORAGE_MULTIPART_PART_SIZE"), cls.STORAGE_MULTIPART_PART_SIZE
            ),
            STORAGE_MULTIPART_CONCURRENCY=_as_int(
                env.get("STORAGE_MULTIPART_CONCURRENCY"),
                cls.STORAGE_MULTIPART_CONCURRENCY,
            ),
            STORAGE_DELETE_CHUNK_SIZE=_as_int(
                env.get("STORAGE_DELETE_CHUNK_SIZE"), cls.STORAGE_DELETE_CHUNK_SIZE
            ),
            STORAGE_COPY_WINDOW=_as_int(
                env.get("STORAGE_COPY_WINDOW"), cls.STORAGE_COPY_WINDOW
            ),
            STORAGE_READ_CHUNK_SIZE=_as_int(
                env.get("STORAGE_READ_CHUNK_SIZE"), cls.STORAGE_READ_CHUNK_SIZE
            ),
            STORAGE_GET_URL_EXPIRES_SECONDS=_as_int(
                env.get("STORAGE_GET_URL_EXPIRES_SECONDS"),
                cls.STORAGE_GET_URL_EXPIRES_SECONDS,
            ),
            STORAGE_PUT_URL_EXPIRES_SECONDS=_as_int(
                env.get("STORAGE_PUT_URL_EXPIRES_SECONDS"),
                cls.STORAGE_PUT_URL_EXPIRES_SECONDS,
            ),
            STORAGE_PART_URL_EXPIRES_SECONDS=_as_int(
                env.get("STORAGE_PART_URL_EXPIRES_SECONDS"),
                cls.STORAGE_PART_URL_EXPIRES_SECONDS,
            ),
            LOG_LEVEL=env.get("LOG_LEVEL", cls.LOG_LEVEL).upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_environment()
