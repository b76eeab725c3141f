from . import (
    audit,
    booking_service,
    ledger,
    quota_cache,
    quota_policy,
    seed,
    slot_catalog,
)
__all__ = [
    "audit",
    "booking_service",
    "ledger",
    "quota_cache",
    "quota_policy",
    "seed",
    "slot_catalog",
]
