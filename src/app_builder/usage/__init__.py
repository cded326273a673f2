"""Credit metering."""

from app_builder.usage.ledger import (
    CreditLedger,
    InsufficientCreditsError,
    QuotaTier,
    UsageStatus,
)

__all__ = ["CreditLedger", "InsufficientCreditsError", "QuotaTier", "UsageStatus"]
