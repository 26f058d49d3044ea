"""
UTXO oracle — liveness of on-chain outputs via the node's `gettxout`.

No caching: an output can be spent between any two calls, so every answer is
only valid at call time.
"""

from typing import Optional

from dex.rpc.pool import RPCPool


class UtxoOracle:
    """Thin query interface over RPCPool for UTXO liveness."""

    def __init__(self, rpc_pool: RPCPool, include_mempool: bool = True):
        self.rpc = rpc_pool
        self.include_mempool = include_mempool

    async def get_utxo_status(self, txid: str, vout: int) -> Optional[dict]:
        """Output metadata, or None if the output is spent or never existed."""
        return await self.rpc.call("gettxout", [txid, int(vout), self.include_mempool])

    async def is_unspent(self, txid: str, vout: int) -> bool:
        status = await self.get_utxo_status(txid, vout)
        print(f"[UTXO] {txid[:16]}...:{vout} {'unspent' if status is not None else 'spent/unknown'}")
        return status is not None
