"""
REST API — P2WDB webhook target + order endpoints.

Routes:
    POST /order          webhook: new order entry from the P2WDB
    GET  /order          list all orders
    GET  /order/{hash}   one order by P2WDB hash
    POST /order/take     {"orderHash": "..."} -> {"partialTxHex": "..."}

Error mapping (error_middleware):
    ValidationError              422
    NotFoundError                404
    OrderAlreadyTaken / Stale    409
    InsufficientFunds / Unsupported 422
    Persistence / Transient      503
    RpcError                     502
"""

from aiohttp import web

from dex.errors import (
    DexError,
    InsufficientFundsError,
    NotFoundError,
    OrderAlreadyTakenError,
    PersistenceError,
    RpcError,
    StaleOrderError,
    TransientError,
    UnsupportedOrderError,
    ValidationError,
)

USE_CASES_KEY = web.AppKey("order_use_cases", object)

_STATUS_BY_ERROR = (
    (ValidationError, 422),
    (NotFoundError, 404),
    (OrderAlreadyTakenError, 409),
    (StaleOrderError, 409),
    (InsufficientFundsError, 422),
    (UnsupportedOrderError, 422),
    (PersistenceError, 503),
    (TransientError, 503),
    (RpcError, 502),
)


def status_for(err: DexError) -> int:
    for cls, status in _STATUS_BY_ERROR:
        if isinstance(err, cls):
            return status
    return 500


@web.middleware
async def error_middleware(request, handler):
    try:
        return await handler(request)
    except DexError as e:
        status = status_for(e)
        print(f"[API] {request.method} {request.path} -> {status} {type(e).__name__}: {e}")
        return web.json_response(
            {"success": False, "error": type(e).__name__, "message": str(e)},
            status=status,
        )


async def _json_body(request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        # JSONDecodeError and UnicodeDecodeError
        raise ValidationError("Request body must be JSON") from None
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


async def create_order(request):
    body = await _json_body(request)
    result = await request.app[USE_CASES_KEY].create_order(body)
    if not result:
        return web.json_response({"success": False, "reason": result.reason})
    return web.json_response({"success": True, "order": result.order.to_dict()}, status=201)


async def list_orders(request):
    orders = await request.app[USE_CASES_KEY].list_orders()
    return web.json_response({"orders": [o.to_dict() for o in orders]})


async def get_order(request):
    order = await request.app[USE_CASES_KEY].find_order_by_hash(request.match_info["hash"])
    return web.json_response({"order": order.to_dict()})


async def take_order(request):
    body = await _json_body(request)
    tx_hex = await request.app[USE_CASES_KEY].take_order(body.get("orderHash"))
    return web.json_response({"success": True, "partialTxHex": tx_hex})


def create_app(order_use_cases) -> web.Application:
    app = web.Application(middlewares=[error_middleware])
    app[USE_CASES_KEY] = order_use_cases
    app.router.add_post("/order", create_order)
    app.router.add_get("/order", list_orders)
    app.router.add_post("/order/take", take_order)
    app.router.add_get("/order/{hash}", get_order)
    return app
