"""
Order entity — canonical value type + validator for inbound P2WDB order events.

Webhook payload shape:
    {
      "p2wdbHash": "zdpu...",
      "data": {
        "utxoTxid": "...", "utxoVout": 0,
        "buyOrSell": "sell", "numTokens": 10, "rateInSats": "100",
        "tokenId": "...",   (optional)
        "offerHash": "...", (optional, local Offer this Order matches)
      }
    }

validate() is pure: no I/O, deterministic. Everything downstream works on
Order instances, never on the raw mapping.
"""

from dataclasses import dataclass, asdict
from typing import Optional, Tuple

from dex.errors import ValidationError

STATUS_POSTED = "posted"
STATUS_TAKEN = "taken"
ORDER_STATUSES = (STATUS_POSTED, STATUS_TAKEN)

SIDE_SELL = "sell"
SIDE_BUY = "buy"
ORDER_SIDES = (SIDE_SELL, SIDE_BUY)

# snake_case column → camelCase wire key
_WIRE_KEYS = {
    "utxo_txid": "utxoTxid",
    "utxo_vout": "utxoVout",
    "buy_or_sell": "buyOrSell",
    "num_tokens": "numTokens",
    "rate_in_sats": "rateInSats",
    "order_status": "orderStatus",
    "token_id": "tokenId",
    "offer_hash": "offerHash",
}


@dataclass(frozen=True)
class Order:
    p2wdb_hash: str
    utxo_txid: str
    utxo_vout: int
    buy_or_sell: str
    num_tokens: int
    rate_in_sats: int
    order_status: str = STATUS_POSTED
    token_id: Optional[str] = None
    offer_hash: Optional[str] = None

    @property
    def sats_needed(self) -> int:
        return self.num_tokens * self.rate_in_sats

    def to_row(self) -> dict:
        return asdict(self)

    @classmethod
    def from_row(cls, row: dict) -> "Order":
        """Rehydrate from a store row, dropping store-internal columns (id, created_at)."""
        fields = {k: row.get(k) for k in cls.__dataclass_fields__}
        return cls(**fields)

    def to_dict(self) -> dict:
        """camelCase rendering used by the REST API."""
        out = {"p2wdbHash": self.p2wdb_hash}
        for col, key in _WIRE_KEYS.items():
            out[key] = getattr(self, col)
        return out


def _require_str(data: dict, key: str) -> str:
    val = data.get(key)
    if not isinstance(val, str) or not val.strip():
        raise ValidationError(f"'{key}' must be a non-empty string")
    return val.strip()


def _optional_str(data: dict, key: str) -> Optional[str]:
    val = data.get(key)
    if val is None or val == "":
        return None
    if not isinstance(val, str):
        raise ValidationError(f"'{key}' must be a string")
    return val


def _positive_int(data: dict, key: str) -> int:
    """Normalize ints, digit strings and integral floats. Rejects bools and <= 0."""
    raw = data.get(key)
    if raw is None:
        raise ValidationError(f"Missing '{key}'")
    if isinstance(raw, bool):
        raise ValidationError(f"Invalid {key}: {raw!r}")
    if isinstance(raw, int):
        val = raw
    elif isinstance(raw, float):
        if not raw.is_integer():
            raise ValidationError(f"{key} must be a whole number, got {raw}")
        val = int(raw)
    elif isinstance(raw, str):
        try:
            val = int(raw.strip())
        except ValueError:
            raise ValidationError(f"Invalid {key}: {raw!r}") from None
    else:
        raise ValidationError(f"Invalid {key}: {raw!r}")
    if val <= 0:
        raise ValidationError(f"{key} must be positive")
    return val


def _vout(data: dict) -> int:
    raw = data.get("utxoVout")
    if raw is None:
        raise ValidationError("Missing 'utxoVout'")
    if isinstance(raw, bool):
        raise ValidationError(f"Invalid utxoVout: {raw!r}")
    # is_integer() is False for inf and nan too
    if isinstance(raw, float) and not raw.is_integer():
        raise ValidationError(f"Invalid utxoVout: {raw!r}")
    try:
        vout = int(raw)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"Invalid utxoVout: {raw!r}") from None
    if vout < 0:
        raise ValidationError("utxoVout must be >= 0")
    return vout


def _data(raw) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError("Order payload must be an object")
    data = raw.get("data")
    if not isinstance(data, dict):
        raise ValidationError("Order payload is missing the 'data' object")
    return data


def require_hash(p2wdb_hash) -> str:
    if not isinstance(p2wdb_hash, str) or not p2wdb_hash:
        raise ValidationError("p2wdbHash must be a string")
    return p2wdb_hash


def utxo_ref(raw) -> Tuple[str, int]:
    """Extract (txid, vout) of the backing output from a raw payload."""
    data = _data(raw)
    return _require_str(data, "utxoTxid"), _vout(data)


def validate(raw) -> Order:
    """Validate and normalize a raw order payload into an Order."""
    data = _data(raw)
    p2wdb_hash = raw.get("p2wdbHash")
    if not isinstance(p2wdb_hash, str) or not p2wdb_hash.strip():
        raise ValidationError("'p2wdbHash' must be a non-empty string")

    side = data.get("buyOrSell")
    if not isinstance(side, str) or side.strip().lower() not in ORDER_SIDES:
        raise ValidationError(f"buyOrSell must be one of {ORDER_SIDES}, got {side!r}")

    status = data.get("orderStatus") or STATUS_POSTED
    if status not in ORDER_STATUSES:
        raise ValidationError(f"orderStatus must be one of {ORDER_STATUSES}, got {status!r}")

    return Order(
        p2wdb_hash=p2wdb_hash.strip(),
        utxo_txid=_require_str(data, "utxoTxid"),
        utxo_vout=_vout(data),
        buy_or_sell=side.strip().lower(),
        num_tokens=_positive_int(data, "numTokens"),
        rate_in_sats=_positive_int(data, "rateInSats"),
        order_status=status,
        token_id=_optional_str(data, "tokenId"),
        offer_hash=_optional_str(data, "offerHash"),
    )
