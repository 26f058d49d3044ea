"""
Supabase DB client wrapper — persisted Order records keyed by p2wdb_hash.
Includes retry on transient errors, operation timeouts, and metrics.

Table `orders`:
    p2wdb_hash text primary key, utxo_txid text, utxo_vout int,
    buy_or_sell text, num_tokens bigint, rate_in_sats bigint,
    order_status text, token_id text, offer_hash text,
    claim_token text,
    created_at timestamptz default now()
"""

import asyncio
import time
import uuid
from typing import List

from supabase import create_client, Client

from dex.errors import NotFoundError, PersistenceError
from dex.orders.entity import Order, require_hash


DB_OPERATION_TIMEOUT = 10.0    # seconds per DB operation
DB_RETRY_ATTEMPTS = 3          # retries on transient errors
DB_RETRY_BASE_DELAY = 0.5      # seconds, exponential backoff base

ORDERS_TABLE = "orders"

# Transient error substrings that trigger retry
_TRANSIENT_ERRORS = (
    "timeout", "connection", "unavailable", "502", "503", "504",
    "broken pipe", "reset by peer", "socket", "network",
    "too many requests", "rate limit",
)


def init_supabase(url: str, key: str) -> Client:
    """Initialize and return a Supabase client."""
    return create_client(url, key)


async def health_check(client: Client) -> bool:
    """Health check: actually queries Supabase to verify connectivity."""
    try:
        if client is None or not hasattr(client, "table"):
            return False
        result = await asyncio.to_thread(
            lambda: client.table(ORDERS_TABLE).select("p2wdb_hash", count="exact").limit(0).execute()
        )
        return result is not None
    except Exception as e:
        print(f"[DB] Health check failed: {e}")
        return False


def _is_transient(e: Exception) -> bool:
    """Check if an exception is transient and worth retrying."""
    msg = str(e).lower()
    return any(kw in msg for kw in _TRANSIENT_ERRORS)


class Database:
    """Async order store over the Supabase client.

    All operations retry on transient errors with exponential backoff and
    have a per-operation timeout. Any fault that survives the retries is
    raised as PersistenceError with the original cause attached.
    """

    def __init__(self, client: Client, timeout: float = DB_OPERATION_TIMEOUT):
        self.client = client
        self.timeout = timeout
        # Metrics
        self._op_count = 0
        self._op_errors = 0
        self._op_retries = 0
        self._total_latency_ms = 0.0

    async def _exec(self, fn, label: str = "db_op"):
        """Execute a Supabase operation with retry, timeout, and metrics.

        Args:
            fn: callable returning a Supabase execute() result
            label: operation name for logging
        """
        last_err = None
        for attempt in range(DB_RETRY_ATTEMPTS):
            t0 = time.monotonic()
            try:
                result = await asyncio.wait_for(
                    asyncio.to_thread(fn),
                    timeout=self.timeout,
                )
                self._op_count += 1
                self._total_latency_ms += (time.monotonic() - t0) * 1000
                return result
            except asyncio.TimeoutError as e:
                self._op_errors += 1
                last_err = e
                print(f"[DB] {label} timed out after {self.timeout}s (attempt {attempt+1})")
            except Exception as e:
                self._op_errors += 1
                last_err = e
                if not _is_transient(e):
                    raise PersistenceError(f"DB operation '{label}' failed: {e}") from e
                print(f"[DB] {label} transient error (attempt {attempt+1}): {e}")

            if attempt < DB_RETRY_ATTEMPTS - 1:
                self._op_retries += 1
                await asyncio.sleep(DB_RETRY_BASE_DELAY * (2 ** attempt))

        raise PersistenceError(
            f"DB operation '{label}' failed after {DB_RETRY_ATTEMPTS} attempts"
        ) from last_err

    def _orders(self):
        return self.client.table(ORDERS_TABLE)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def save(self, order: Order) -> Order:
        """Insert a new order. Duplicate hashes are rejected by the primary key."""
        row = order.to_row()
        result = await self._exec(
            lambda: self._orders().insert(row).execute(),
            f"insert_order({order.p2wdb_hash[:8]})",
        )
        return Order.from_row(result.data[0]) if result.data else order

    async def find_all(self) -> List[Order]:
        result = await self._exec(
            lambda: self._orders().select("*").execute(),
            "list_orders",
        )
        return [Order.from_row(row) for row in (result.data or [])]

    async def find_by_hash(self, p2wdb_hash: str) -> Order:
        require_hash(p2wdb_hash)
        result = await self._exec(
            lambda: self._orders().select("*").eq("p2wdb_hash", p2wdb_hash).limit(1).execute(),
            f"get_order({p2wdb_hash[:8]})",
        )
        if not result.data:
            raise NotFoundError("order not found")
        return Order.from_row(result.data[0])

    async def transition_status(self, p2wdb_hash: str, from_status: str, to_status: str) -> bool:
        """Conditional update: only rows still in `from_status` change.

        Returns False when zero rows were updated (someone else moved it first).
        Each call stamps a fresh claim_token on the row. If _exec retried and
        the first attempt had already committed, the retry matches zero rows;
        reading the token back tells our own write apart from a competitor's.
        """
        token = uuid.uuid4().hex
        values = {"order_status": to_status, "claim_token": token}
        label = f"transition({p2wdb_hash[:8]}:{from_status}->{to_status})"
        result = await self._exec(
            lambda: self._orders()
                .update(values)
                .eq("p2wdb_hash", p2wdb_hash)
                .eq("order_status", from_status)
                .execute(),
            label,
        )
        if result.data:
            return True

        check = await self._exec(
            lambda: self._orders()
                .select("order_status, claim_token")
                .eq("p2wdb_hash", p2wdb_hash)
                .limit(1)
                .execute(),
            f"{label}:verify",
        )
        row = check.data[0] if check.data else {}
        if row.get("claim_token") == token and row.get("order_status") == to_status:
            print(f"[DB] {label} committed on an earlier attempt")
            return True
        return False

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def metrics(self) -> dict:
        avg_lat = (self._total_latency_ms / max(self._op_count, 1))
        return {
            "operations": self._op_count,
            "errors": self._op_errors,
            "retries": self._op_retries,
            "avg_latency_ms": round(avg_lat, 1),
        }
