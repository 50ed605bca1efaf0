"""
Tests for the simulated payment gateway.
"""
import random
import re
from decimal import Decimal

import pytest

from checkout.gateway import (
    APPROVED_MESSAGE,
    DECLINED_MESSAGE,
    CardDetails,
    SimulatedGateway,
    generate_transaction_id,
)

CARD = CardDetails("4111111111111111", "123", "12/27")


class TestSimulatedGateway:
    @pytest.mark.asyncio
    async def test_always_approves_at_full_rate(self) -> None:
        gateway = SimulatedGateway(delay=0, approval_rate=1.0)

        result = await gateway.charge(Decimal("10.00"), CARD)

        assert result.approved is True
        assert result.message == APPROVED_MESSAGE

    @pytest.mark.asyncio
    async def test_declines_at_zero_rate(self) -> None:
        """拒否時も例外は投げず、結果オブジェクトで返す"""
        gateway = SimulatedGateway(delay=0, approval_rate=0.0)

        result = await gateway.charge(Decimal("10.00"), CARD)

        assert result.approved is False
        assert result.message == DECLINED_MESSAGE
        assert result.transaction_id.startswith("TXN-")

    @pytest.mark.asyncio
    async def test_counts_calls(self) -> None:
        gateway = SimulatedGateway(delay=0)

        for _ in range(3):
            await gateway.charge(Decimal("1.00"), CARD)

        assert gateway.calls == 3

    @pytest.mark.asyncio
    async def test_seeded_rng_is_deterministic(self) -> None:
        first = SimulatedGateway(delay=0, approval_rate=0.5, rng=random.Random(42))
        second = SimulatedGateway(delay=0, approval_rate=0.5, rng=random.Random(42))

        a = [(await first.charge(Decimal("1"), CARD)).approved for _ in range(20)]
        b = [(await second.charge(Decimal("1"), CARD)).approved for _ in range(20)]

        assert a == b

    @pytest.mark.asyncio
    async def test_fresh_transaction_id_per_call(self) -> None:
        gateway = SimulatedGateway(delay=0, approval_rate=1.0)

        ids = {(await gateway.charge(Decimal("1"), CARD)).transaction_id for _ in range(50)}

        assert len(ids) == 50


def test_transaction_id_format() -> None:
    assert re.fullmatch(r"TXN-[0-9]+-[a-z0-9]{9}", generate_transaction_id())


def test_transaction_ids_are_unique() -> None:
    ids = {generate_transaction_id() for _ in range(10_000)}
    assert len(ids) == 10_000
