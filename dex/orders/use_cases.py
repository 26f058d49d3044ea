"""
Order use cases — lifecycle of Orders received from the P2WDB.

Orders are created by the POST /order webhook, triggered when new data lands
in the P2WDB. They differ from Offers, which are generated by a local user:
an Order matching a local Offer arrives through the same webhook as Orders
from other peers, so both are handled identically here.

State machine:  posted --take_order--> taken

take_order claims the order with a conditional store update
(posted -> taken) once every check has passed. That update is the only
commit point, so of N concurrent takers exactly one gets the partial tx.
"""

import asyncio
from dataclasses import dataclass
from typing import List, Optional

from dex.errors import OrderAlreadyTakenError, StaleOrderError
from dex.orders import entity
from dex.orders.entity import Order, STATUS_POSTED, STATUS_TAKEN


@dataclass(frozen=True)
class CreateResult:
    """Outcome of create_order. Falsy when the order was ignored."""
    created: bool
    order: Optional[Order] = None
    reason: str = ""

    def __bool__(self):
        return self.created


class OrderUseCases:
    """Handles order lifecycle: create → list/find → take."""

    def __init__(self, store, utxo_oracle, wallet, solvency_guard):
        self.store = store
        self.utxo_oracle = utxo_oracle
        self.wallet = wallet
        self.solvency = solvency_guard

    # ------------------------------------------------------------------
    # Create (webhook)
    # ------------------------------------------------------------------

    async def create_order(self, raw: dict) -> CreateResult:
        """Persist a new Order from a P2WDB webhook payload.

        A spent backing UTXO is a routine race, not a fault: nothing is stored
        and a falsy result is returned.
        """
        print(f"[ORDERS] create_order: {raw.get('p2wdbHash') if isinstance(raw, dict) else raw!r}")
        txid, vout = entity.utxo_ref(raw)
        if not await self.utxo_oracle.is_unspent(txid, vout):
            print(f"[ORDERS] Ignoring order backed by spent UTXO {txid[:16]}...:{vout}")
            return CreateResult(created=False, reason="utxo spent")

        payload = {**raw, "data": {**raw["data"], "orderStatus": STATUS_POSTED}}
        order = entity.validate(payload)

        try:
            saved = await self.store.save(order)
        except Exception as e:
            print(f"[ORDERS] Error in create_order(): {e}")
            raise
        print(f"[ORDERS] Order {saved.p2wdb_hash[:12]} posted "
              f"({saved.buy_or_sell} {saved.num_tokens} @ {saved.rate_in_sats} sats)")
        return CreateResult(created=True, order=saved)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list_orders(self) -> List[Order]:
        return await self.store.find_all()

    async def find_order_by_hash(self, p2wdb_hash: str) -> Order:
        entity.require_hash(p2wdb_hash)
        return await self.store.find_by_hash(p2wdb_hash)

    # ------------------------------------------------------------------
    # Take: phase 2 of 3 of the trade
    # ------------------------------------------------------------------

    async def take_order(self, order_hash: str) -> str:
        """Take the other side of a posted Order.

        Returns the hex of a partially-signed tx for the advertiser to
        co-sign. The tx is not broadcast here.
        """
        order = await self.find_order_by_hash(order_hash)

        if order.order_status and order.order_status != STATUS_POSTED:
            raise OrderAlreadyTakenError("order already taken")

        if not await self.utxo_oracle.is_unspent(order.utxo_txid, order.utxo_vout):
            print(f"[ORDERS] utxo txid: {order.utxo_txid}, vout: {order.utxo_vout}")
            raise StaleOrderError("UTXO does not exist. Aborting.")

        await self.solvency.ensure_funds(order)

        claimed = await self.store.transition_status(order_hash, STATUS_POSTED, STATUS_TAKEN)
        if not claimed:
            print(f"[ORDERS] Order {order_hash[:12]} claimed by a concurrent take")
            raise OrderAlreadyTakenError("order already taken")

        try:
            utxos = await self.wallet.get_utxos()
            partial_tx_hex = await self.wallet.generate_partial_tx(order, utxos)
        except BaseException as e:
            # CancelledError included: a cancelled take must not keep the claim.
            print(f"[ORDERS] take_order({order_hash[:12]}) failed after claim, releasing: {e!r}")
            await asyncio.shield(self._release(order_hash))
            raise

        print(f"[ORDERS] Order {order_hash[:12]} taken")
        return partial_tx_hex

    async def _release(self, order_hash: str):
        try:
            await self.store.transition_status(order_hash, STATUS_TAKEN, STATUS_POSTED)
        except Exception as e:
            # The caller re-raises the original failure; this one is only logged.
            print(f"[ORDERS] Release of {order_hash[:12]} failed, order stays taken: {e}")

    async def ensure_funds(self, order: Order) -> bool:
        return await self.solvency.ensure_funds(order)
