"""
RPCPool — health-scored JSON-RPC endpoint manager for full-node queries.

Features:
  - Multiple node endpoints, first = primary
  - Health scoring: tracks timeouts, errors, latency per endpoint
  - Cooldown: temporarily disables unhealthy endpoints
  - Circuit breaker after consecutive failures
  - Global concurrency semaphore
  - Retry on a different endpoint for transport failures

JSON-RPC error replies (e.g. "No such mempool or blockchain transaction")
are definitive and raised as RpcError without retry.
"""

import asyncio
import itertools
import time
from dataclasses import dataclass, field
from typing import Any, List, Optional

import aiohttp

from dex.errors import RpcError, TransientError

# Defaults
DEFAULT_CALL_TIMEOUT = 10.0          # seconds per RPC call
CIRCUIT_BREAKER_THRESHOLD = 5        # consecutive errors to open circuit
CIRCUIT_BREAKER_RESET_SEC = 60.0     # how long circuit stays open
MAX_RETRY_ATTEMPTS = 2               # retries on different endpoints


# ---------------------------------------------------------------------------
# Endpoint health tracking
# ---------------------------------------------------------------------------

@dataclass
class NodeEndpoint:
    """Single node endpoint with health metrics."""
    url: str
    tier: str  # "primary" or "secondary"

    total_calls: int = 0
    errors_timeout: int = 0
    errors_other: int = 0
    total_latency_ms: float = 0.0

    cooldown_until: float = 0.0
    _consecutive_errors: int = 0
    _circuit_open_until: float = 0.0

    lifetime_calls: int = 0
    lifetime_errors: int = 0

    _window_start: float = field(default_factory=time.time)

    WINDOW_SECONDS: float = 60.0
    COOLDOWN_BASE_SECONDS: float = 2.0
    COOLDOWN_MAX_SECONDS: float = 60.0

    @property
    def is_cooled_down(self) -> bool:
        now = time.time()
        return now < self.cooldown_until or now < self._circuit_open_until

    @property
    def avg_latency_ms(self) -> float:
        return (self.total_latency_ms / self.total_calls) if self.total_calls > 0 else 0.0

    def score(self) -> float:
        """Health score, higher is better."""
        if self.is_cooled_down:
            return -1.0
        tier_bonus = 30 if self.tier == "primary" else 0
        error_penalty = (self.errors_timeout * 10) + (self.errors_other * 5)
        latency_penalty = max(0, (self.avg_latency_ms - 200) / 50)
        return max(0, 100 + tier_bonus - error_penalty - latency_penalty)

    def record_success(self, latency_ms: float):
        self._maybe_reset_window()
        self.total_calls += 1
        self.total_latency_ms += latency_ms
        self.lifetime_calls += 1
        self._consecutive_errors = 0

    def record_error(self, error_type: str):
        """Record an error, apply cooldown, and check circuit breaker."""
        self._maybe_reset_window()
        self.total_calls += 1
        self.lifetime_calls += 1
        self.lifetime_errors += 1
        self._consecutive_errors += 1

        if error_type == "timeout":
            self.errors_timeout += 1
            consecutive = self.errors_timeout
        else:
            self.errors_other += 1
            consecutive = self.errors_other

        # Exponential cooldown: 2s, 4s, 8s, ... up to 60s
        cooldown = min(
            self.COOLDOWN_BASE_SECONDS * (2 ** (consecutive - 1)),
            self.COOLDOWN_MAX_SECONDS,
        )
        self.cooldown_until = time.time() + cooldown

        if self._consecutive_errors >= CIRCUIT_BREAKER_THRESHOLD:
            self._circuit_open_until = time.time() + CIRCUIT_BREAKER_RESET_SEC
            print(f"[RPC-POOL] Circuit OPEN for {self.url[:30]}... "
                  f"({self._consecutive_errors} consecutive errors)")

    def _maybe_reset_window(self):
        now = time.time()
        if now - self._window_start > self.WINDOW_SECONDS:
            self.total_calls = 0
            self.errors_timeout = 0
            self.errors_other = 0
            self.total_latency_ms = 0.0
            self._window_start = now


# ---------------------------------------------------------------------------
# RPC Pool
# ---------------------------------------------------------------------------

class RPCPool:
    """Health-scored JSON-RPC pool with concurrency limits and fallback."""

    def __init__(
        self,
        urls: List[str],
        max_concurrency: int = 6,
        timeout: float = DEFAULT_CALL_TIMEOUT,
    ):
        if not urls:
            raise ValueError("RPCPool requires at least one URL")

        self.endpoints: List[NodeEndpoint] = [
            NodeEndpoint(url=url, tier="primary" if i == 0 else "secondary")
            for i, url in enumerate(urls)
        ]
        self.timeout = timeout
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._max_concurrency = max_concurrency
        self._session: Optional[aiohttp.ClientSession] = None
        self._ids = itertools.count(1)
        self._total_retries = 0

    async def _ensure_session(self):
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    # ------------------------------------------------------------------
    # Endpoint selection
    # ------------------------------------------------------------------

    def pick(self, tried: Optional[set] = None) -> NodeEndpoint:
        """Pick the best healthy endpoint, preferring ones not yet tried."""
        tried = tried or set()
        healthy = [ep for ep in self.endpoints
                   if not ep.is_cooled_down and id(ep) not in tried]
        if healthy:
            return max(healthy, key=lambda ep: ep.score())
        untried = [ep for ep in self.endpoints if id(ep) not in tried]
        candidates = untried or self.endpoints
        # All candidates cooling down, use the one with shortest cooldown
        return min(candidates, key=lambda ep: ep.cooldown_until)

    # ------------------------------------------------------------------
    # Guarded RPC call
    # ------------------------------------------------------------------

    async def call(self, method: str, params: Optional[list] = None, retry: bool = True) -> Any:
        """Execute a JSON-RPC call with health tracking, concurrency control,
        per-call timeout, and retry on a different endpoint.

        Returns the `result` member of the reply (may be None).
        Raises RpcError on an error reply, TransientError when every attempt
        failed at the transport level.
        """
        await self._ensure_session()
        max_attempts = min(MAX_RETRY_ATTEMPTS, len(self.endpoints)) if retry else 1
        payload = {
            "jsonrpc": "1.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        last_err = None
        tried = set()

        for attempt in range(max_attempts):
            ep = self.pick(tried)
            tried.add(id(ep))

            async with self._semaphore:
                t0 = time.monotonic()
                try:
                    reply = await self._post(ep, payload)
                except asyncio.TimeoutError as e:
                    ep.record_error("timeout")
                    last_err = e
                    self._total_retries += 1
                    print(f"[RPC-POOL] {method} timed out after {self.timeout}s on {ep.url[:30]}")
                    continue
                except aiohttp.ClientError as e:
                    ep.record_error("other")
                    last_err = e
                    self._total_retries += 1
                    print(f"[RPC-POOL] {method} failed on {ep.url[:30]}: {e}")
                    continue
                ep.record_success((time.monotonic() - t0) * 1000)

            if not isinstance(reply, dict):
                raise RpcError(f"{method}: malformed JSON-RPC reply: {reply!r}")
            error = reply.get("error")
            if error:
                if isinstance(error, dict):
                    raise RpcError(
                        f"{method}: {error.get('message', error)}",
                        code=error.get("code", 0),
                    )
                raise RpcError(f"{method}: {error}")
            return reply.get("result")

        raise TransientError(f"RPC {method} failed on {len(tried)} endpoint(s)") from last_err

    async def _post(self, ep: NodeEndpoint, payload: dict) -> dict:
        async with self._session.post(ep.url, json=payload) as resp:
            # bitcoind answers RPC errors with HTTP 500 + a JSON body
            rpc_error_reply = resp.status == 500 and resp.content_type == "application/json"
            if resp.status != 200 and not rpc_error_reply:
                raise aiohttp.ClientResponseError(
                    resp.request_info, resp.history,
                    status=resp.status, message=f"HTTP {resp.status}",
                )
            try:
                return await resp.json(content_type=None)
            except ValueError as e:
                raise RpcError(f"non-JSON reply from {ep.url[:30]}: HTTP {resp.status}") from e

    # ------------------------------------------------------------------
    # Convenience
    # ------------------------------------------------------------------

    @property
    def healthy_count(self) -> int:
        return sum(1 for ep in self.endpoints if not ep.is_cooled_down)

    def metrics(self) -> dict:
        total_lifetime = sum(ep.lifetime_calls for ep in self.endpoints)
        total_errors = sum(ep.lifetime_errors for ep in self.endpoints)
        return {
            "endpoints": len(self.endpoints),
            "healthy": self.healthy_count,
            "lifetime_calls": total_lifetime,
            "lifetime_errors": total_errors,
            "error_rate": round(total_errors / max(total_lifetime, 1), 4),
            "total_retries": self._total_retries,
        }

    def summary(self) -> str:
        parts = []
        for ep in self.endpoints:
            status = "down" if ep.is_cooled_down else "up"
            parts.append(
                f"[{status}] {ep.tier}:{ep.url[:30]}... "
                f"score={ep.score():.0f} calls={ep.total_calls} "
                f"lat={ep.avg_latency_ms:.0f}ms life={ep.lifetime_calls}"
            )
        m = self.metrics()
        return (
            f"RPCPool: {m['healthy']}/{m['endpoints']} healthy, "
            f"concurrency={self._max_concurrency}, "
            f"retries={m['total_retries']}, "
            f"err_rate={m['error_rate']:.1%}\n  " + "\n  ".join(parts)
        )

    def print_status(self):
        print(f"[RPC-POOL] {self.summary()}")
