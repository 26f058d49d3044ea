"""
Hot Wallet — app wallet adapter over the wallet service's JSON-RPC.

Key management and raw signing live in the wallet service; this class only
exposes what the order engine needs:
  - private_key:        signing credential reference (WIF)
  - get_balance():      spendable BCH in sats
  - get_token_balance() token balance for a token id
  - get_utxos():        live UTXO snapshot (also kept in utxo_store)
  - generate_partial_tx(): phase 2 of the trade, partially-signed tx hex

Balance and UTXO reads are best-effort snapshots; broadcasts outside this
process can change them at any time.
"""

import string
from decimal import Decimal
from typing import List, Optional

from dex.errors import RpcError
from dex.orders.entity import Order
from dex.rpc.pool import RPCPool

SATS_PER_BCH = Decimal(100_000_000)

# Wallet service methods
RPC_BALANCE = "getbalance"
RPC_TOKEN_BALANCE = "getbalance_slp"
RPC_LIST_UNSPENT = "listunspent"
RPC_PARTIAL_TX = "generatepartialtx"


def _to_sats(amount) -> int:
    """Electron-Cash style balances are BCH decimal strings; ints are already sats."""
    if isinstance(amount, int):
        return amount
    return int(Decimal(str(amount)) * SATS_PER_BCH)


def _is_hex(s: str) -> bool:
    return bool(s) and len(s) % 2 == 0 and all(c in string.hexdigits for c in s)


class HotWallet:
    """Single app wallet backed by the wallet service."""

    def __init__(self, private_key: str, rpc: RPCPool):
        if not private_key:
            raise ValueError("HotWallet requires a private key (WIF)")
        self.private_key = private_key
        self.rpc = rpc
        self.utxo_store: List[dict] = []

        # Metrics
        self._partial_tx_count: int = 0
        self._partial_tx_failures: int = 0

    # ------------------------------------------------------------------
    # Balance queries
    # ------------------------------------------------------------------

    async def get_balance(self) -> int:
        result = await self.rpc.call(RPC_BALANCE)
        if isinstance(result, dict):
            # {"confirmed": "0.01", "unconfirmed": "0.002"}
            return _to_sats(result.get("confirmed", 0)) + _to_sats(result.get("unconfirmed", 0))
        return _to_sats(result)

    async def get_token_balance(self, token_id: str) -> Decimal:
        result = await self.rpc.call(RPC_TOKEN_BALANCE, [token_id])
        if isinstance(result, dict):
            result = result.get("valid", 0)
        return Decimal(str(result or 0))

    # ------------------------------------------------------------------
    # UTXOs
    # ------------------------------------------------------------------

    async def get_utxos(self) -> List[dict]:
        """Refresh and return the UTXO snapshot."""
        utxos = await self.rpc.call(RPC_LIST_UNSPENT)
        self.utxo_store = list(utxos or [])
        print(f"[WALLET] UTXO snapshot: {len(self.utxo_store)} output(s)")
        return self.utxo_store

    # ------------------------------------------------------------------
    # Partial transaction
    # ------------------------------------------------------------------

    async def generate_partial_tx(self, order: Order, utxos: Optional[List[dict]] = None) -> str:
        """Build and half-sign the purchase tx for `order`.

        Inputs: the order's token UTXO (unsigned, seller signs later) plus
        wallet UTXOs covering order.sats_needed. Not retried: the wallet
        service may lock inputs on the first attempt.
        """
        utxos = self.utxo_store if utxos is None else utxos
        try:
            tx_hex = await self.rpc.call(RPC_PARTIAL_TX, [order.to_dict(), utxos], retry=False)
        except Exception:
            self._partial_tx_failures += 1
            raise
        if not isinstance(tx_hex, str) or not _is_hex(tx_hex):
            self._partial_tx_failures += 1
            raise RpcError(f"{RPC_PARTIAL_TX}: wallet returned a non-hex transaction")
        self._partial_tx_count += 1
        print(f"[WALLET] Partial tx built for order {order.p2wdb_hash[:12]} ({len(tx_hex) // 2} bytes)")
        return tx_hex

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def metrics(self) -> dict:
        return {
            "partial_tx_count": self._partial_tx_count,
            "partial_tx_failures": self._partial_tx_failures,
            "utxos": len(self.utxo_store),
        }

    def __repr__(self):
        return f"HotWallet({self.private_key[:4]}...)"
