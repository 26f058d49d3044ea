"""
P2WDB client — write-cost and funding checks against the P2WDB server.

API: GET {server}/entry/cost/psf  ->  {"psfCost": 0.133}

A write to the P2WDB burns `psfCost` PSF tokens and needs a little BCH for
the tx fee, so the app wallet must hold both before it can publish.
"""

import asyncio
from decimal import Decimal, InvalidOperation
from typing import Optional

import aiohttp

from dex.errors import TransientError

HTTP_TIMEOUT_SEC = 15
MIN_WRITE_SATS = 2_000          # BCH needed to pay the write tx fee
COST_CACHE_SEC = 600            # write cost changes rarely


class P2wdbClient:
    """Async client for the P2WDB server, bound to the app wallet."""

    def __init__(self, server_url: str, wallet, psf_token_id: str,
                 min_write_sats: int = MIN_WRITE_SATS):
        self.server_url = server_url.rstrip("/")
        self.wallet = wallet
        self.psf_token_id = psf_token_id
        self.min_write_sats = min_write_sats
        self._session: Optional[aiohttp.ClientSession] = None
        self._cost: Optional[Decimal] = None
        self._cost_ts: float = 0.0

    async def _ensure_session(self):
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=HTTP_TIMEOUT_SEC)
            self._session = aiohttp.ClientSession(timeout=timeout)

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def get_write_cost(self) -> Decimal:
        """PSF tokens burned per write."""
        now = asyncio.get_running_loop().time()
        if self._cost is not None and now - self._cost_ts < COST_CACHE_SEC:
            return self._cost

        await self._ensure_session()
        url = f"{self.server_url}/entry/cost/psf"
        try:
            async with self._session.get(url) as resp:
                resp.raise_for_status()
                data = await resp.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise TransientError(f"P2WDB cost lookup timed out ({HTTP_TIMEOUT_SEC}s)") from e
        except (aiohttp.ClientError, ValueError) as e:
            raise TransientError(f"P2WDB cost lookup failed: {e}") from e

        try:
            cost = Decimal(str(data["psfCost"]))
        except (KeyError, TypeError, InvalidOperation) as e:
            raise TransientError(f"P2WDB cost lookup returned an unexpected reply: {data!r}") from e
        if not cost.is_finite() or cost < 0:
            raise TransientError(f"P2WDB cost lookup returned an invalid cost: {cost}")

        self._cost = cost
        self._cost_ts = now
        return self._cost

    async def check_for_sufficient_funds(self, credential: str) -> bool:
        """True if the wallet behind `credential` can pay for one P2WDB write."""
        if credential != self.wallet.private_key:
            raise ValueError("credential does not belong to the bound app wallet")

        cost = await self.get_write_cost()
        psf_balance = await self.wallet.get_token_balance(self.psf_token_id)
        if psf_balance < cost:
            print(f"[P2WDB] PSF balance {psf_balance} below write cost {cost}")
            return False

        bch_balance = await self.wallet.get_balance()
        if bch_balance < self.min_write_sats:
            print(f"[P2WDB] BCH balance {bch_balance} sats below {self.min_write_sats}")
            return False
        return True
