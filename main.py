"""
DEX order engine — Entry point.
Wires all components and serves the P2WDB webhook / order API.

Usage:
    python3 main.py              # Full engine (Supabase order store)
    python3 main.py --memory     # In-process order store (local testing)
    python3 main.py --smoke      # Smoke test only (connect + exit)
"""

import argparse
import asyncio
import sys

from aiohttp import web

from dex.config import (
    NODE_RPC_URLS,
    WALLET_RPC_URL,
    WALLET_WIF,
    P2WDB_SERVER_URL,
    PSF_TOKEN_ID,
    SUPABASE_URL,
    SUPABASE_KEY,
    WEBHOOK_HOST,
    WEBHOOK_PORT,
    SATS_MARGIN,
    RPC_TIMEOUT,
    MAX_RPC_CONCURRENCY,
    print_config_summary,
)
from dex.rpc.pool import RPCPool
from dex.rpc.utxo_oracle import UtxoOracle
from dex.wallets.hot_wallet import HotWallet
from dex.p2wdb.client import P2wdbClient
from dex.db.client import init_supabase, health_check, Database
from dex.db.memory import MemoryOrderStore
from dex.orders.solvency import SolvencyGuard
from dex.orders.use_cases import OrderUseCases
from dex.api.webhook import create_app


async def smoke_test():
    """Smoke test: connect to node, wallet, P2WDB and Supabase, print status, exit."""
    print("=" * 50)
    print("  DEX Engine — Smoke Test")
    print("=" * 50)
    print()
    print_config_summary()
    print()

    node_pool = RPCPool(urls=NODE_RPC_URLS, max_concurrency=MAX_RPC_CONCURRENCY, timeout=RPC_TIMEOUT)
    wallet_pool = RPCPool(urls=[WALLET_RPC_URL], timeout=RPC_TIMEOUT)
    p2wdb = None
    try:
        print("[NODE] Connecting...")
        info = await node_pool.call("getblockchaininfo")
        print(f"[NODE] OK chain={info.get('chain')} blocks={info.get('blocks')}")
        node_pool.print_status()

        print()
        print("[WALLET] Loading app wallet...")
        wallet = HotWallet(WALLET_WIF, wallet_pool)
        balance = await wallet.get_balance()
        print(f"[WALLET] OK balance: {balance} sats")

        print()
        p2wdb = P2wdbClient(P2WDB_SERVER_URL, wallet, PSF_TOKEN_ID)
        cost = await p2wdb.get_write_cost()
        print(f"[P2WDB] OK write cost: {cost} PSF")

        if SUPABASE_URL:
            print()
            print("[DB] Connecting to Supabase...")
            ok = await health_check(init_supabase(SUPABASE_URL, SUPABASE_KEY))
            print(f"[DB] {'supabase ok' if ok else 'Client init failed'}")
    except Exception as e:
        print(f"[SMOKE] FAILED: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        await node_pool.close()
        await wallet_pool.close()
        if p2wdb:
            await p2wdb.close()

    print()
    print("=" * 50)
    print("  SMOKE TEST PASSED")
    print("=" * 50)


async def run_engine(use_memory: bool):
    """Full engine: webhook server backed by node, wallet, P2WDB and order store."""
    print("=" * 50)
    print("  DEX Engine — Starting")
    print("=" * 50)
    print()
    print_config_summary()
    print()

    # 1. Chain + wallet
    print(f"[INIT] Creating node pool ({len(NODE_RPC_URLS)} endpoints, concurrency={MAX_RPC_CONCURRENCY})...")
    node_pool = RPCPool(urls=NODE_RPC_URLS, max_concurrency=MAX_RPC_CONCURRENCY, timeout=RPC_TIMEOUT)
    wallet_pool = RPCPool(urls=[WALLET_RPC_URL], timeout=RPC_TIMEOUT)
    wallet = HotWallet(WALLET_WIF, wallet_pool)
    p2wdb = P2wdbClient(P2WDB_SERVER_URL, wallet, PSF_TOKEN_ID)

    # 2. Order store
    if use_memory:
        store = MemoryOrderStore()
        print("[INIT] In-memory order store (orders are lost on exit)")
    else:
        if not SUPABASE_URL or not SUPABASE_KEY:
            print("[INIT] FATAL: SUPABASE_URL/SUPABASE_KEY required (or pass --memory)", file=sys.stderr)
            sys.exit(1)
        store = Database(init_supabase(SUPABASE_URL, SUPABASE_KEY))
        print("[INIT] Supabase order store connected")

    # 3. Use cases + API
    order_use_cases = OrderUseCases(
        store=store,
        utxo_oracle=UtxoOracle(node_pool),
        wallet=wallet,
        solvency_guard=SolvencyGuard(wallet, p2wdb, margin_sats=SATS_MARGIN),
    )
    app = create_app(order_use_cases)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, WEBHOOK_HOST, WEBHOOK_PORT)
    await site.start()

    print()
    print("=" * 50)
    print(f"  DEX Engine — Listening on {WEBHOOK_HOST}:{WEBHOOK_PORT}")
    print("=" * 50)
    print("  Ctrl+C to stop")
    print()

    try:
        await asyncio.Event().wait()
    except asyncio.CancelledError:
        pass
    finally:
        print("\n[ENGINE] Shutting down...")
        await runner.cleanup()
        await p2wdb.close()
        await node_pool.close()
        await wallet_pool.close()
        print("[ENGINE] Stopped.")


def main():
    parser = argparse.ArgumentParser(description="DEX order engine")
    parser.add_argument("--smoke", action="store_true", help="Smoke test only (connect + exit)")
    parser.add_argument("--memory", action="store_true", help="Use the in-memory order store")
    args = parser.parse_args()

    try:
        if args.smoke:
            asyncio.run(smoke_test())
        else:
            asyncio.run(run_engine(args.memory))
    except KeyboardInterrupt:
        print("\nStopped.")


if __name__ == "__main__":
    main()
