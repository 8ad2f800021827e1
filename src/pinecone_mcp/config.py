"""Application settings (Pinecone, reranking, flow TTL) and logging config."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

DEFAULT_INDEX_NAME = "rag-hybrid"
DEFAULT_SPARSE_INDEX_NAME = "pinecone-rag-sparse"
DEFAULT_RERANK_MODEL = "bge-reranker-v2-m3"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class Settings(BaseSettings):
    pinecone_api_key: str = ""
    pinecone_index_name: str = DEFAULT_INDEX_NAME
    # Dedicated lexical index for keyword_search, not the hybrid sparse half.
    pinecone_sparse_index_name: str = DEFAULT_SPARSE_INDEX_NAME
    pinecone_rerank_model: str = DEFAULT_RERANK_MODEL
    pinecone_top_k: int = 10

    log_level: str = "INFO"
    log_path: Path | None = None

    flow_ttl_seconds: float = 1800.0  # 30 minutes

    model_config = {"env_file": ".env", "extra": "ignore"}

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_level(cls, value: object) -> str:
        level = str(value or "INFO").strip().upper()
        if level == "WARN":
            level = "WARNING"
        return level if level in _LOG_LEVELS else "INFO"

    @property
    def hybrid_sparse_index_name(self) -> str:
        return f"{self.pinecone_index_name}-sparse"

    @property
    def debug(self) -> bool:
        return self.log_level == "DEBUG"


def load_settings() -> Settings:
    return Settings()


def configure_logging(settings: Settings) -> None:
    """Set up root logger with stderr (and optional file) handlers.

    stdout carries the MCP stdio protocol, so nothing logs there.
    Idempotent: returns early if root logger already has handlers.
    """
    root = logging.getLogger()
    if root.handlers:
        return
    level = getattr(logging, settings.log_level)
    root.setLevel(level)

    fmt = logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s")

    stderr_handler = logging.StreamHandler()
    stderr_handler.setLevel(level)
    stderr_handler.setFormatter(fmt)
    root.addHandler(stderr_handler)

    if settings.log_path is None:
        return
    settings.log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        settings.log_path,
        maxBytes=5_000_000,  # 5 MB per file
        backupCount=3,
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)
