"""
Pipeline settings.

Values are read once at process start (after loading `.env`) and passed into
the services explicitly. Table and queue names are resolved here, including an
optional deployment prefix, so call sites never derive resource names
themselves.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from repositories.client import ENV_PATH
from repositories.queue_repository import MAX_MESSAGES_PER_RECEIVE, MAX_WAIT_SECONDS, clamp

DEFAULT_MAX_RETRY_COUNT = 3
DEFAULT_BATCH_SIZE = 10
DEFAULT_WINDOW_SIZE_MINUTES = 5
DEFAULT_TIMEOUT_SECONDS = 60


def _int_setting(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got {raw!r}") from None


@dataclass(frozen=True, slots=True)
class PipelineSettings:
    billing_table: str = "billing_records"
    invoice_table: str = "invoices"
    billing_queue: str = "billing"
    invoice_queue: str = "invoice"
    resource_prefix: str = ""
    max_retry_count: int = DEFAULT_MAX_RETRY_COUNT
    batch_size: int = DEFAULT_BATCH_SIZE
    window_size_minutes: int = DEFAULT_WINDOW_SIZE_MINUTES
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    receive_wait_seconds: int = 5
    visibility_timeout_seconds: int = 300
    max_receive_count: int = 3

    def __post_init__(self) -> None:
        if self.max_retry_count < 1:
            raise ValueError("max_retry_count must be >= 1")
        if self.window_size_minutes < 1:
            raise ValueError("window_size_minutes must be >= 1")
        if self.timeout_seconds < 1:
            raise ValueError("timeout_seconds must be >= 1")
        # frozen dataclass: clamp through object.__setattr__
        object.__setattr__(self, "batch_size", clamp(self.batch_size, 1, MAX_MESSAGES_PER_RECEIVE))
        object.__setattr__(self, "receive_wait_seconds", clamp(self.receive_wait_seconds, 0, MAX_WAIT_SECONDS))

    @property
    def resolved_billing_table(self) -> str:
        return f"{self.resource_prefix}{self.billing_table}"

    @property
    def resolved_invoice_table(self) -> str:
        return f"{self.resource_prefix}{self.invoice_table}"

    @property
    def resolved_billing_queue(self) -> str:
        return f"{self.resource_prefix}{self.billing_queue}"

    @property
    def resolved_invoice_queue(self) -> str:
        return f"{self.resource_prefix}{self.invoice_queue}"

    @staticmethod
    def from_env(env: Optional[Mapping[str, str]] = None) -> "PipelineSettings":
        """
        Build settings from environment variables.

        Args:
            env: mapping to read instead of os.environ (the .env file is only
                loaded when reading the real environment)
        """

        if env is None:
            load_dotenv(dotenv_path=ENV_PATH)
            env = os.environ

        return PipelineSettings(
            billing_table=env.get("BILLING_TABLE_NAME") or "billing_records",
            invoice_table=env.get("INVOICE_TABLE_NAME") or "invoices",
            billing_queue=env.get("BILLING_QUEUE_NAME") or "billing",
            invoice_queue=env.get("INVOICE_QUEUE_NAME") or "invoice",
            resource_prefix=env.get("RESOURCE_PREFIX") or "",
            max_retry_count=_int_setting(env, "MAX_RETRY_COUNT", DEFAULT_MAX_RETRY_COUNT),
            batch_size=_int_setting(env, "AGGREGATOR_BATCH_SIZE", DEFAULT_BATCH_SIZE),
            window_size_minutes=_int_setting(env, "WINDOW_SIZE_MINUTES", DEFAULT_WINDOW_SIZE_MINUTES),
            timeout_seconds=_int_setting(env, "AGGREGATOR_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
            receive_wait_seconds=_int_setting(env, "RECEIVE_WAIT_SECONDS", 5),
            visibility_timeout_seconds=_int_setting(env, "VISIBILITY_TIMEOUT_SECONDS", 300),
            max_receive_count=_int_setting(env, "MAX_RECEIVE_COUNT", 3),
        )


__all__ = [
    "PipelineSettings",
    "DEFAULT_MAX_RETRY_COUNT",
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_WINDOW_SIZE_MINUTES",
    "DEFAULT_TIMEOUT_SECONDS",
]
