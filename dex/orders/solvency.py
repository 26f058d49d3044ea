"""
Solvency guard — runs immediately before committing to a trade.

Advisory but mandatory: balances are read live and not locked, so a
broadcast elsewhere can still drain the wallet between check and use.
SATS_MARGIN absorbs tx fees and small races.
"""

from dex.errors import InsufficientFundsError, UnsupportedOrderError
from dex.orders.entity import Order, SIDE_SELL

SATS_MARGIN = 5000


class SolvencyGuard:

    def __init__(self, wallet, p2wdb, margin_sats: int = SATS_MARGIN):
        self.wallet = wallet
        self.p2wdb = p2wdb
        self.margin_sats = margin_sats

    async def ensure_funds(self, order: Order) -> bool:
        """Return True if the app wallet can complete `order`, else raise."""
        # Buy orders are rejected before any balance read.
        if SIDE_SELL not in order.buy_or_sell:
            raise UnsupportedOrderError("Buy orders are not supported yet.")

        can_write = await self.p2wdb.check_for_sufficient_funds(self.wallet.private_key)
        if not can_write:
            raise InsufficientFundsError("App wallet does not have funds for writing to the P2WDB.")

        sats_needed = order.sats_needed
        balance = await self.wallet.get_balance()
        print(f"[ORDERS] wallet balance: {balance}, sats needed: {sats_needed}")
        if sats_needed + self.margin_sats > balance:
            raise InsufficientFundsError(
                "App wallet does not control enough BCH to purchase the tokens."
            )
        return True
