"""Storage backends and models."""

from app_builder.storage.base import Storage
from app_builder.storage.memory import InMemoryStorage
from app_builder.storage.models import (
    CompensationResult,
    FragmentRecord,
    MessageRecord,
    RunRecord,
    StepRecord,
    UsageRecord,
)
from app_builder.storage.postgres import PostgresStorage

__all__ = [
    "CompensationResult",
    "FragmentRecord",
    "InMemoryStorage",
    "MessageRecord",
    "PostgresStorage",
    "RunRecord",
    "StepRecord",
    "Storage",
    "UsageRecord",
]
