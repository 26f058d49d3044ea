import asyncio

import pytest

from dex.db.memory import MemoryOrderStore
from dex.orders.solvency import SolvencyGuard
from dex.orders.use_cases import OrderUseCases

TXID = "abc"
PARTIAL_TX_HEX = "0200000001deadbeef"


def make_payload(p2wdb_hash="zdpuOrder1", **data):
    body = {
        "utxoTxid": TXID,
        "utxoVout": 0,
        "buyOrSell": "sell",
        "numTokens": 10,
        "rateInSats": 100,
    }
    body.update(data)
    return {"p2wdbHash": p2wdb_hash, "data": body}


class MockOracle:
    """UTXO oracle with a settable set of live outputs; records every query."""

    def __init__(self, live=((TXID, 0),)):
        self.live = set(live)
        self.calls = []

    async def get_utxo_status(self, txid, vout):
        self.calls.append((txid, vout))
        await asyncio.sleep(0)
        return {"value": 0.00000546, "confirmations": 3} if (txid, vout) in self.live else None

    async def is_unspent(self, txid, vout):
        return await self.get_utxo_status(txid, vout) is not None


class MockWallet:
    def __init__(self, balance=10_000, tx_hex=PARTIAL_TX_HEX, fail_with=None):
        self.private_key = "KxTestWif"
        self.balance = balance
        self.tx_hex = tx_hex
        self.fail_with = fail_with
        self.utxo_store = [{"txid": "f00d", "vout": 1, "value": 20_000}]
        self.calls = []

    async def get_balance(self):
        self.calls.append("get_balance")
        await asyncio.sleep(0)
        return self.balance

    async def get_utxos(self):
        self.calls.append("get_utxos")
        return self.utxo_store

    async def generate_partial_tx(self, order, utxos=None):
        self.calls.append(("generate_partial_tx", order.p2wdb_hash))
        await asyncio.sleep(0)
        if self.fail_with:
            raise self.fail_with
        return self.tx_hex


class MockP2wdb:
    def __init__(self, can_write=True):
        self.can_write = can_write
        self.calls = []

    async def check_for_sufficient_funds(self, credential):
        self.calls.append(credential)
        return self.can_write


class Harness:
    """Engine wired to in-memory store and mock collaborators."""

    def __init__(self, balance=10_000, live=((TXID, 0),), can_write=True, wallet_error=None):
        self.store = MemoryOrderStore()
        self.oracle = MockOracle(live)
        self.wallet = MockWallet(balance, fail_with=wallet_error)
        self.p2wdb = MockP2wdb(can_write)
        self.guard = SolvencyGuard(self.wallet, self.p2wdb)
        self.use_cases = OrderUseCases(self.store, self.oracle, self.wallet, self.guard)


@pytest.fixture
def harness():
    return Harness()
