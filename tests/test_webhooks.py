from datetime import timedelta

import pytest

from fletchling.webhooks import SettingsConfig, WebhookConfig


def test_flush_interval_is_seconds():
    assert SettingsConfig(flush_interval_seconds=5).flush_interval() == timedelta(seconds=5)


@pytest.mark.parametrize("seconds", [0, -3])
def test_settings_validate_rejects_small_interval(seconds):
    with pytest.raises(ValueError, match=f"not {seconds}"):
        SettingsConfig(flush_interval_seconds=seconds).validate()


def test_headers_as_map_keeps_only_single_colon_headers():
    cfg = WebhookConfig(
        url="http://localhost/hook",
        headers=["Authorization:Bearer token", "X-Broken", "X-Url:http://x"],
    )
    assert cfg.headers_as_map() == {"Authorization": "Bearer token"}


def test_headers_as_map_does_not_strip_whitespace():
    cfg = WebhookConfig(headers=["X-Key: value"])
    assert cfg.headers_as_map() == {"X-Key": " value"}


def test_headers_as_map_empty():
    assert WebhookConfig().headers_as_map() == {}