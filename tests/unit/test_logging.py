import logging

import pytest
import structlog

from repofuse.config import Settings, get_settings
from repofuse.logging import configure_logging


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def _renderer(root: logging.Logger):
    [handler] = root.handlers
    return handler.formatter.processors[-1]


def test_prod_env_from_dotenv_selects_json(tmp_path, monkeypatch, restore_root_logging) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("APP_ENV", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    (tmp_path / ".env").write_text("APP_ENV=prod\nLOG_LEVEL=WARNING\n", encoding="utf-8")
    get_settings.cache_clear()

    configure_logging()

    assert isinstance(_renderer(restore_root_logging), structlog.processors.JSONRenderer)
    assert restore_root_logging.level == logging.WARNING


def test_dev_env_uses_console_and_quiets_httpx(monkeypatch, restore_root_logging) -> None:
    monkeypatch.setenv("APP_ENV", "dev")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    get_settings.cache_clear()

    configure_logging(get_settings())

    assert isinstance(_renderer(restore_root_logging), structlog.dev.ConsoleRenderer)
    assert restore_root_logging.level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING


def test_explicit_flag_overrides_environment(monkeypatch, restore_root_logging) -> None:
    monkeypatch.setenv("APP_ENV", "prod")
    settings = Settings()

    configure_logging(settings, json_output=False)

    assert isinstance(_renderer(restore_root_logging), structlog.dev.ConsoleRenderer)
