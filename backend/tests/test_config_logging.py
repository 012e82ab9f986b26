# ruff: noqa: S101
from __future__ import annotations

import json
import logging

import pytest
from pydantic import ValidationError

from sandbox_admission.core.config import Settings
from sandbox_admission.core.logging import (
    ROOT_LOGGER_NAME,
    JsonFormatter,
    TextFormatter,
    build_formatter,
    configure_logging,
    get_logger,
)


def _record(message: str, **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        "sandbox_admission.services.admission",
        logging.INFO,
        __file__,
        1,
        message,
        (),
        None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_quota_defaults_from_settings() -> None:
    config = Settings(_env_file=None)
    defaults = config.quota_defaults()

    assert defaults.max_sandboxes == 3
    assert defaults.max_concurrent_running == 1
    assert defaults.allowed_tier_ids == ["starter"]
    assert defaults.max_tier_id == "starter"
    assert defaults.allowed_addon_ids == ["code-server"]
    assert config.default_addons() == ["code-server"]
    assert config.slug_max_attempts == 100


def test_quota_defaults_parse_comma_lists() -> None:
    config = Settings(
        _env_file=None,
        quota_default_allowed_tier_ids=" Starter, builder ,starter",
        quota_default_allowed_addon_ids="",
        default_addon_ids="code-server,gui",
    )
    defaults = config.quota_defaults()

    assert defaults.allowed_tier_ids == ["starter", "builder"]
    assert defaults.allowed_addon_ids is None
    assert config.default_addons() == ["code-server", "gui"]


def test_environment_overrides_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("QUOTA_DEFAULT_MAX_SANDBOXES", "7")
    monkeypatch.setenv("LOG_FORMAT", "json")

    config = Settings(_env_file=None)

    assert config.quota_defaults().max_sandboxes == 7
    assert isinstance(build_formatter(config), JsonFormatter)


def test_invalid_settings_are_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, log_format="xml")
    with pytest.raises(ValidationError):
        Settings(_env_file=None, quota_default_allowed_tier_ids=" , ")
    with pytest.raises(ValidationError):
        Settings(_env_file=None, slug_max_attempts=0)


def test_text_formatter_appends_sorted_extras() -> None:
    formatter = TextFormatter("%(levelname)s %(message)s")
    rendered = formatter.format(_record("admission.create.denied", user_id="u1", denial="tier_not_allowed"))
    assert rendered == "INFO admission.create.denied denial=tier_not_allowed user_id=u1"


def test_json_formatter_merges_extras() -> None:
    rendered = JsonFormatter().format(_record("quota_policy.bootstrap", user_id="u1"))
    payload = json.loads(rendered)

    assert payload["message"] == "quota_policy.bootstrap"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "sandbox_admission.services.admission"
    assert payload["user_id"] == "u1"


def test_configure_logging_installs_single_handler() -> None:
    config = Settings(_env_file=None, log_level="debug", log_format="text")

    logger = configure_logging(config)
    configure_logging(config)

    assert logger.name == ROOT_LOGGER_NAME
    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, TextFormatter)
    assert logger.propagate is False


def test_get_logger_nests_under_package_root() -> None:
    assert get_logger("sandbox_admission.db.locks").name == "sandbox_admission.db.locks"
    assert get_logger("scripts.seed").name == "sandbox_admission.scripts.seed"
