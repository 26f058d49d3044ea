"""
In-process order store. Same contract as the Supabase Database store; used
for local runs (main.py --memory) and tests.
"""

import asyncio
from dataclasses import replace
from typing import Dict, List

from dex.errors import NotFoundError, PersistenceError
from dex.orders.entity import Order, require_hash


class MemoryOrderStore:

    def __init__(self):
        self._orders: Dict[str, Order] = {}
        self._lock = asyncio.Lock()

    async def save(self, order: Order) -> Order:
        async with self._lock:
            if order.p2wdb_hash in self._orders:
                raise PersistenceError(f"duplicate p2wdb_hash {order.p2wdb_hash}")
            self._orders[order.p2wdb_hash] = order
        return order

    async def find_all(self) -> List[Order]:
        return list(self._orders.values())

    async def find_by_hash(self, p2wdb_hash: str) -> Order:
        require_hash(p2wdb_hash)
        order = self._orders.get(p2wdb_hash)
        if order is None:
            raise NotFoundError("order not found")
        return order

    async def transition_status(self, p2wdb_hash: str, from_status: str, to_status: str) -> bool:
        """Set status to `to_status` only where it is currently `from_status`."""
        async with self._lock:
            order = self._orders.get(p2wdb_hash)
            if order is None or order.order_status != from_status:
                return False
            self._orders[p2wdb_hash] = replace(order, order_status=to_status)
            return True
