import asyncio

import pytest

from dex.errors import (
    InsufficientFundsError,
    NotFoundError,
    OrderAlreadyTakenError,
    PersistenceError,
    RpcError,
    StaleOrderError,
    UnsupportedOrderError,
    ValidationError,
)
from dex.orders import entity

from conftest import Harness, PARTIAL_TX_HEX, TXID, make_payload


# ---------------------------------------------------------------------------
# create_order
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_order_persists_posted(harness):
    result = await harness.use_cases.create_order(make_payload(orderStatus="taken"))
    assert result
    assert result.order.order_status == "posted"
    stored = await harness.store.find_all()
    assert len(stored) == 1
    assert stored[0].order_status == "posted"
    assert harness.oracle.calls == [(TXID, 0)]


@pytest.mark.asyncio
async def test_create_order_ignores_spent_utxo():
    h = Harness(live=())
    result = await h.use_cases.create_order(make_payload())
    assert not result
    assert result.reason == "utxo spent"
    assert await h.store.find_all() == []


@pytest.mark.asyncio
async def test_create_order_rejects_malformed_payload(harness):
    with pytest.raises(ValidationError):
        await harness.use_cases.create_order(make_payload(numTokens="lots"))
    assert await harness.store.find_all() == []


@pytest.mark.asyncio
async def test_create_order_without_utxo_ref_never_queries_chain(harness):
    with pytest.raises(ValidationError):
        await harness.use_cases.create_order({"p2wdbHash": "zdpu", "data": {"buyOrSell": "sell"}})
    assert harness.oracle.calls == []


@pytest.mark.asyncio
async def test_create_order_surfaces_persistence_error(harness):
    await harness.use_cases.create_order(make_payload())
    with pytest.raises(PersistenceError):
        await harness.use_cases.create_order(make_payload())


@pytest.mark.asyncio
async def test_create_then_find_round_trip(harness):
    payload = make_payload(tokenId="38e97c5d", rateInSats="250")
    await harness.use_cases.create_order(payload)
    found = await harness.use_cases.find_order_by_hash("zdpuOrder1")
    expected = entity.validate({**payload, "data": {**payload["data"], "orderStatus": "posted"}})
    assert found == expected


@pytest.mark.asyncio
async def test_list_orders(harness):
    harness.oracle.live.add(("def", 1))
    await harness.use_cases.create_order(make_payload("h1"))
    await harness.use_cases.create_order(make_payload("h2", utxoTxid="def", utxoVout=1))
    hashes = {o.p2wdb_hash for o in await harness.use_cases.list_orders()}
    assert hashes == {"h1", "h2"}


@pytest.mark.asyncio
@pytest.mark.parametrize("bad", ["", None, 5])
async def test_find_order_by_hash_validates(harness, bad):
    with pytest.raises(ValidationError):
        await harness.use_cases.find_order_by_hash(bad)


@pytest.mark.asyncio
async def test_find_order_by_hash_not_found(harness):
    with pytest.raises(NotFoundError):
        await harness.use_cases.find_order_by_hash("zdpuMissing")


# ---------------------------------------------------------------------------
# take_order
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_take_order_returns_partial_tx_and_commits_taken(harness):
    await harness.use_cases.create_order(make_payload())
    tx_hex = await harness.use_cases.take_order("zdpuOrder1")
    assert tx_hex == PARTIAL_TX_HEX
    assert (await harness.store.find_by_hash("zdpuOrder1")).order_status == "taken"
    assert harness.wallet.calls[-2:] == ["get_utxos", ("generate_partial_tx", "zdpuOrder1")]


@pytest.mark.asyncio
async def test_take_order_rejects_taken_without_side_effects(harness):
    await harness.use_cases.create_order(make_payload())
    await harness.use_cases.take_order("zdpuOrder1")
    harness.oracle.calls.clear()
    harness.wallet.calls.clear()
    harness.p2wdb.calls.clear()

    with pytest.raises(OrderAlreadyTakenError):
        await harness.use_cases.take_order("zdpuOrder1")
    assert harness.oracle.calls == []
    assert harness.wallet.calls == []
    assert harness.p2wdb.calls == []


@pytest.mark.asyncio
async def test_take_order_not_found(harness):
    with pytest.raises(NotFoundError):
        await harness.use_cases.take_order("zdpuMissing")


@pytest.mark.asyncio
async def test_take_order_stale_utxo(harness):
    await harness.use_cases.create_order(make_payload())
    harness.oracle.live.clear()
    with pytest.raises(StaleOrderError, match="UTXO does not exist"):
        await harness.use_cases.take_order("zdpuOrder1")
    assert (await harness.store.find_by_hash("zdpuOrder1")).order_status == "posted"
    assert harness.wallet.calls == []


@pytest.mark.asyncio
async def test_take_order_insufficient_funds_leaves_order_posted():
    h = Harness(balance=4_000)
    await h.use_cases.create_order(make_payload())
    with pytest.raises(InsufficientFundsError):
        await h.use_cases.take_order("zdpuOrder1")
    assert (await h.store.find_by_hash("zdpuOrder1")).order_status == "posted"


@pytest.mark.asyncio
async def test_take_buy_order_unsupported(harness):
    await harness.use_cases.create_order(make_payload(buyOrSell="buy"))
    with pytest.raises(UnsupportedOrderError):
        await harness.use_cases.take_order("zdpuOrder1")


@pytest.mark.asyncio
async def test_take_order_releases_claim_when_wallet_fails():
    h = Harness(wallet_error=RpcError("generatepartialtx: insufficient inputs"))
    await h.use_cases.create_order(make_payload())
    with pytest.raises(RpcError):
        await h.use_cases.take_order("zdpuOrder1")
    assert (await h.store.find_by_hash("zdpuOrder1")).order_status == "posted"


@pytest.mark.asyncio
async def test_cancelled_take_releases_claim():
    h = Harness()
    await h.use_cases.create_order(make_payload())
    building = asyncio.Event()

    async def hang(order, utxos=None):
        building.set()
        await asyncio.sleep(3600)

    h.wallet.generate_partial_tx = hang
    task = asyncio.create_task(h.use_cases.take_order("zdpuOrder1"))
    await building.wait()
    assert (await h.store.find_by_hash("zdpuOrder1")).order_status == "taken"

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert (await h.store.find_by_hash("zdpuOrder1")).order_status == "posted"


@pytest.mark.asyncio
async def test_concurrent_takes_only_one_wins(harness):
    await harness.use_cases.create_order(make_payload())
    n = 10
    results = await asyncio.gather(
        *(harness.use_cases.take_order("zdpuOrder1") for _ in range(n)),
        return_exceptions=True,
    )
    winners = [r for r in results if r == PARTIAL_TX_HEX]
    losers = [r for r in results if isinstance(r, OrderAlreadyTakenError)]
    assert len(winners) == 1
    assert len(losers) == n - 1
    partial_tx_calls = [c for c in harness.wallet.calls if isinstance(c, tuple)]
    assert len(partial_tx_calls) == 1


@pytest.mark.asyncio
async def test_ensure_funds_delegates_to_guard(harness):
    order = entity.validate(make_payload())
    assert await harness.use_cases.ensure_funds(order)
