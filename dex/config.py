"""
DEX configuration — loads env vars, validates required, fails fast.

Only main.py imports this module; components take their settings through
constructor arguments.
"""

import os
import sys
from pathlib import Path
from dotenv import load_dotenv

# Load .env from project root
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path)

_WARNINGS: list = []  # collected during load, printed at summary


def _require(name: str) -> str:
    """Get a required env var or exit with a clear error."""
    val = os.getenv(name)
    if not val:
        print(f"FATAL: missing required env var: {name}", file=sys.stderr)
        print("  Copy .env.example to .env and fill in the values.", file=sys.stderr)
        sys.exit(1)
    return val.strip()


def _optional(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def _validate_url(url: str, label: str) -> str:
    """Validate a URL starts with http:// or https://."""
    if not url.startswith(("http://", "https://")):
        print(f"FATAL: {label} must start with http:// or https://: {url}", file=sys.stderr)
        sys.exit(1)
    return url


def _validate_wif(key: str, label: str) -> str:
    """BCH WIF: base58, 51 chars (uncompressed) or 52 chars (compressed)."""
    base58 = set("123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz")
    if len(key) not in (51, 52) or not set(key) <= base58:
        print(f"FATAL: {label} is not a valid WIF private key", file=sys.stderr)
        sys.exit(1)
    return key


def _int_range(name: str, raw: str, low: int, high: int) -> int:
    """Parse an int and clamp to [low, high] with a warning."""
    try:
        val = int(raw)
    except ValueError:
        print(f"FATAL: {name} must be an integer, got: {raw}", file=sys.stderr)
        sys.exit(1)
    if val < low or val > high:
        clamped = max(low, min(val, high))
        _WARNINGS.append(f"{name}={val} out of range [{low},{high}], clamped to {clamped}")
        return clamped
    return val


# === Full nodes (comma-separated JSON-RPC URLs, first = primary) ===
NODE_RPC_URLS = [u.strip() for u in _require("NODE_RPC_URLS").split(",") if u.strip()]
for _u in NODE_RPC_URLS:
    _validate_url(_u, "NODE_RPC_URLS entry")
if len(NODE_RPC_URLS) < 2:
    _WARNINGS.append("Only 1 node endpoint, no fallback available")

# === App wallet ===
WALLET_RPC_URL: str = _validate_url(_require("WALLET_RPC_URL"), "WALLET_RPC_URL")
WALLET_WIF: str = _validate_wif(_require("WALLET_WIF"), "WALLET_WIF")

# === P2WDB ===
P2WDB_SERVER_URL: str = _validate_url(
    _optional("P2WDB_SERVER_URL", "https://p2wdb.fullstack.cash"), "P2WDB_SERVER_URL"
)
PSF_TOKEN_ID: str = _optional(
    "PSF_TOKEN_ID", "38e97c5d7d3585a2cbf3f9580c82ca33985f9cb0845d4dcce220cb709f9538b0"
)

# === Supabase (optional with --memory) ===
SUPABASE_URL: str = _optional("SUPABASE_URL")
SUPABASE_KEY: str = _optional("SUPABASE_KEY")
if SUPABASE_URL:
    _validate_url(SUPABASE_URL, "SUPABASE_URL")

# === Webhook server ===
WEBHOOK_HOST: str = _optional("WEBHOOK_HOST", "0.0.0.0")
WEBHOOK_PORT: int = _int_range("WEBHOOK_PORT", _optional("WEBHOOK_PORT", "5700"), 1, 65535)

# === Tuning (with range validation) ===
SATS_MARGIN: int = _int_range("SATS_MARGIN", _optional("SATS_MARGIN", "5000"), 0, 10_000_000)
RPC_TIMEOUT: int = _int_range("RPC_TIMEOUT", _optional("RPC_TIMEOUT", "10"), 1, 120)
MAX_RPC_CONCURRENCY: int = _int_range("MAX_RPC_CONCURRENCY", _optional("MAX_RPC_CONCURRENCY", "6"), 1, 50)


def print_config_summary() -> None:
    """Print a non-sensitive config summary for startup verification."""
    print("--- DEX Config ---")
    print(f"  Nodes:          {len(NODE_RPC_URLS)} ({NODE_RPC_URLS[0][:40]}...)")
    print(f"  Wallet RPC:     {WALLET_RPC_URL[:40]}...")
    # Show only first/last chars of wallet key for safety
    print(f"  Wallet WIF:     {WALLET_WIF[:4]}...{WALLET_WIF[-4:]}")
    print(f"  P2WDB:          {P2WDB_SERVER_URL[:40]}")
    print(f"  Supabase:       {SUPABASE_URL[:40] + '...' if SUPABASE_URL else '(not set)'}")
    print(f"  Webhook:        {WEBHOOK_HOST}:{WEBHOOK_PORT}")
    print(f"  Sats margin:    {SATS_MARGIN}")
    print(f"  RPC timeout:    {RPC_TIMEOUT}s")
    print(f"  RPC concurrency:{MAX_RPC_CONCURRENCY}")
    if _WARNINGS:
        print(f"  {len(_WARNINGS)} config warning(s):")
        for w in _WARNINGS:
            print(f"    - {w}")
    print("-" * 18)
