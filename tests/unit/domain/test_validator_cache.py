"""ValidatorCache: lazy build, TTL expiry, explicit invalidation."""

import pytest
from pydantic import BaseModel

from billing_pipeline.domain.exceptions import InvalidEnvelopeError
from billing_pipeline.domain.validators.cache import ValidatorCache


class Ticker:
    def __init__(self) -> None:
        self.t = 0.0

    def __call__(self) -> float:
        return self.t


def test_builds_once_per_type():
    cache = ValidatorCache()
    first = cache.get("subscription.created")
    second = cache.get("subscription.created")
    assert first is second
    assert cache.builds == 1
    assert len(cache) == 1


def test_entry_rebuilt_after_ttl():
    ticker = Ticker()
    cache = ValidatorCache(ttl_seconds=10, clock=ticker)
    first = cache.get("subscription.created")
    ticker.t = 10.0
    second = cache.get("subscription.created")
    assert first is not second
    assert cache.builds == 2


def test_invalidate_one_and_all():
    cache = ValidatorCache()
    cache.get("subscription.created")
    cache.invalidate("subscription.created")
    assert len(cache) == 0
    cache.get("subscription.created")
    cache.invalidate()
    assert len(cache) == 0


def test_unknown_type_raises():
    with pytest.raises(InvalidEnvelopeError):
        ValidatorCache().get("invoice.paid")


def test_register_new_schema():
    class InvoicePaid(BaseModel):
        invoice_id: str

    cache = ValidatorCache()
    cache.register("invoice.paid", InvoicePaid)
    assert cache.get("invoice.paid").validate_python({"invoice_id": "i-1"}).invoice_id == "i-1"
