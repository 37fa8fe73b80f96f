"""
pettycash_kernel.config
=======================

Responsibility:
    Configuration schema for the petty-cash kernel: database location,
    approver roles, payment-method labels, variance policy and the bounded
    retry used by the ``PettyCashService`` facade.

Invariants enforced:
    - ``approver_roles`` is non-empty.
    - ``max_retries >= 0`` and ``retry_backoff_seconds >= 0``.

Failure modes:
    - Invalid values -> ``ValueError`` from ``__post_init__``.
    - Missing YAML file -> ``FileNotFoundError``; malformed YAML ->
      ``yaml.YAMLError``; unknown keys -> ``TypeError``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Self

import yaml

from pettycash_kernel.logging_config import get_logger

logger = get_logger("config")

DATABASE_URL_ENV = "PETTYCASH_DATABASE_URL"


@dataclass(frozen=True)
class PettyCashConfig:
    """
    Configuration for the petty-cash kernel.

    Example::

        config = PettyCashConfig.from_yaml(Path("pettycash.yaml"))
        service = PettyCashService.from_config(config)
    """

    database_url: str = "sqlite:///pettycash.db"

    # Roles allowed to approve/reject transactions and replenishments
    approver_roles: tuple[str, ...] = ("owner", "admin", "manager")

    default_payment_method: str = "Cash"
    expense_payment_method: str = "Petty Cash"

    require_variance_reason: bool = True

    # Bounded retry on optimistic-lock conflicts and transient store errors
    max_retries: int = 3
    retry_backoff_seconds: float = 0.05

    def __post_init__(self):
        if not self.approver_roles:
            raise ValueError("approver_roles cannot be empty")
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.retry_backoff_seconds < 0:
            raise ValueError("retry_backoff_seconds cannot be negative")

    def can_approve(self, role: str) -> bool:
        return role in self.approver_roles

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create config from a dictionary (e.g. parsed YAML)."""
        logger.info(
            "pettycash_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        values = dict(data)
        if "approver_roles" in values:
            values["approver_roles"] = tuple(values["approver_roles"])
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Path) -> Self:
        """Load config from a YAML file.  An empty file yields defaults."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        section = data.get("petty_cash", data)
        return cls.from_dict(section)


def load_config(path: Path | None = None) -> PettyCashConfig:
    """
    Resolve the active configuration.

    YAML file when ``path`` is given, defaults otherwise; the
    ``PETTYCASH_DATABASE_URL`` environment variable overrides
    ``database_url`` in both cases.
    """
    config = PettyCashConfig.from_yaml(path) if path else PettyCashConfig.with_defaults()
    env_url = os.environ.get(DATABASE_URL_ENV)
    if env_url:
        values = {f.name: getattr(config, f.name) for f in fields(config)}
        values["database_url"] = env_url
        config = PettyCashConfig(**values)
    logger.info(
        "pettycash_config_resolved",
        extra={
            "source": str(path) if path else "defaults",
            "database_url_from_env": bool(env_url),
            "max_retries": config.max_retries,
        },
    )
    return config
