"""
records/models.py -- Domain dataclass for the per-account health record.

Pure data container. The payload is deliberately schema-less: a mapping of
measurement names to whatever JSON-compatible value the client sends
(typically {"value": ..., "recorded_at": ...}). The store never interprets it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class HealthRecord:
    """The single, evolving health document owned by one account."""

    account_id: int
    updated_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)
