"""Webhook destination settings and a sender that drops everything."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Iterable

from fletchling.models import Nest, NestingPokemonInfo


@dataclass
class SettingsConfig:
    """How often queued webhooks are sent."""

    flush_interval_seconds: int = 0

    def flush_interval(self) -> timedelta:
        return timedelta(seconds=self.flush_interval_seconds)

    def validate(self) -> None:
        sec = self.flush_interval_seconds
        if sec < 1:
            raise ValueError(f"webhooks flush_interval_seconds should be at least 1, not {sec}")


@dataclass
class WebhookConfig:
    """One webhook destination. Headers are given as "Name:value" strings."""

    url: str = ""
    headers: list[str] = field(default_factory=list)
    areas: list[str] = field(default_factory=list)

    def headers_as_map(self) -> dict[str, str]:
        """Headers with exactly one colon, split into name and value."""
        result: dict[str, str] = {}
        for header in self.headers:
            parts = header.split(":")
            if len(parts) == 2:
                result[parts[0]] = parts[1]
        return result

    def validate(self) -> None:
        """Check that the url and every header are strings."""
        if not isinstance(self.url, str):
            raise TypeError(f"webhook url must be a string, not {type(self.url).__name__}")
        for header in self.headers:
            if not isinstance(header, str):
                raise TypeError(f"webhook header must be a string, not {type(header).__name__}")


def validate_webhooks(webhooks: Iterable[WebhookConfig]) -> None:
    """Validate each destination, raising on the first that fails."""
    for webhook in webhooks:
        webhook.validate()


class NoopSender:
    """A webhook sender that discards every nest webhook, counting what it drops."""

    def __init__(self) -> None:
        self.dropped = 0

    def add_nest_webhook(self, nest: Nest, ni: NestingPokemonInfo) -> None:
        self.dropped += 1