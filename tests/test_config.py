from __future__ import annotations

import logging
import tomllib
from collections.abc import Iterator
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from pinecone_mcp import __version__
from pinecone_mcp.config import Settings, configure_logging

_ENV_VARS = (
    "PINECONE_API_KEY",
    "PINECONE_INDEX_NAME",
    "PINECONE_SPARSE_INDEX_NAME",
    "PINECONE_RERANK_MODEL",
    "PINECONE_TOP_K",
    "LOG_LEVEL",
    "LOG_PATH",
    "FLOW_TTL_SECONDS",
)


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@contextmanager
def _bare_root_logger() -> Iterator[logging.Logger]:
    """Root logger with no handlers, restored afterwards.

    pytest attaches its capture handlers to the root logger for the test
    call, so this must run inside the test body, not in a fixture.
    """
    root = logging.getLogger()
    saved_handlers = root.handlers[:]
    saved_level = root.level
    root.handlers.clear()
    try:
        yield root
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)


class TestVersion:
    def test_version_is_string(self):
        assert isinstance(__version__, str)

    def test_version_format(self):
        parts = __version__.split(".")
        assert len(parts) == 3
        assert all(part.isdigit() for part in parts)


class TestPackaging:
    def test_mcp_pinned_to_fastmcp_major(self):
        pyproject = Path(__file__).parents[1] / "pyproject.toml"
        deps = tomllib.loads(pyproject.read_text())["project"]["dependencies"]
        (mcp_dep,) = [d for d in deps if d.startswith("mcp")]
        assert "<2" in mcp_dep


@pytest.mark.usefixtures("clean_env")
class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.pinecone_api_key == ""
        assert settings.pinecone_index_name == "rag-hybrid"
        assert settings.pinecone_sparse_index_name == "pinecone-rag-sparse"
        assert settings.pinecone_rerank_model == "bge-reranker-v2-m3"
        assert settings.pinecone_top_k == 10
        assert settings.log_level == "INFO"
        assert settings.log_path is None
        assert settings.flow_ttl_seconds == 1800

    def test_hybrid_sparse_index_follows_dense_name(self):
        settings = Settings(_env_file=None, pinecone_index_name="docs")
        assert settings.hybrid_sparse_index_name == "docs-sparse"

    def test_override_via_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("PINECONE_API_KEY", "env-key")
        monkeypatch.setenv("PINECONE_INDEX_NAME", "env-index")
        monkeypatch.setenv("PINECONE_TOP_K", "25")
        settings = Settings(_env_file=None)
        assert settings.pinecone_api_key == "env-key"
        assert settings.pinecone_index_name == "env-index"
        assert settings.pinecone_top_k == 25

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("debug", "DEBUG"),
            ("WARN", "WARNING"),
            ("warning", "WARNING"),
            ("error", "ERROR"),
            ("verbose", "INFO"),
            ("", "INFO"),
        ],
    )
    def test_log_level_normalized(self, raw: str, expected: str):
        assert Settings(_env_file=None, log_level=raw).log_level == expected

    def test_debug_flag(self):
        assert Settings(_env_file=None, log_level="DEBUG").debug is True
        assert Settings(_env_file=None, log_level="INFO").debug is False


class TestConfigureLogging:
    def test_installs_stderr_handler(self):
        with _bare_root_logger() as root:
            configure_logging(Settings(_env_file=None, log_level="WARNING"))
            assert len(root.handlers) == 1
            assert root.level == logging.WARNING

    def test_idempotent(self):
        settings = Settings(_env_file=None)
        with _bare_root_logger() as root:
            configure_logging(settings)
            configure_logging(settings)
            assert len(root.handlers) == 1

    def test_file_handler_when_log_path_set(self, tmp_path: Path):
        log_path = tmp_path / "logs" / "server.log"
        with _bare_root_logger() as root:
            configure_logging(Settings(_env_file=None, log_path=log_path))
            file_handlers = [h for h in root.handlers if isinstance(h, RotatingFileHandler)]
            assert len(file_handlers) == 1
        assert log_path.parent.is_dir()
