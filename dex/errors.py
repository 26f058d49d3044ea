"""
Error taxonomy for the order engine.

Business rejections (OrderRejected) are normal outcomes the transport maps to
4xx replies. PersistenceError / TransientError are faults a caller may retry.
"""


class DexError(Exception):
    """Base for every error raised by the engine."""


class ValidationError(DexError):
    """Malformed order payload or lookup key. Never retried."""


class NotFoundError(DexError):
    """No order stored under the requested hash."""


class OrderRejected(DexError):
    """A well-formed request the engine refuses to act on."""


class OrderAlreadyTakenError(OrderRejected):
    pass


class StaleOrderError(OrderRejected):
    """Backing UTXO is spent or unknown."""


class InsufficientFundsError(OrderRejected):
    pass


class UnsupportedOrderError(OrderRejected):
    """Recognized order variant that is not implemented (buy orders)."""


class PersistenceError(DexError):
    """Storage-layer fault. Possibly retryable."""


class TransientError(DexError):
    """Timeout or unreachable endpoint. Retryable."""


class RpcError(DexError):
    """Definitive error reply from a JSON-RPC endpoint."""

    def __init__(self, message: str, code: int = 0):
        super().__init__(message)
        self.code = code
