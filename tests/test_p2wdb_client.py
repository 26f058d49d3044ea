from decimal import Decimal

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from dex.errors import TransientError
from dex.p2wdb.client import P2wdbClient

PSF = "38e97c5d"


class PsfWallet:
    private_key = "KxTestWif"

    def __init__(self, psf, sats):
        self.psf = Decimal(psf)
        self.sats = sats

    async def get_token_balance(self, token_id):
        assert token_id == PSF
        return self.psf

    async def get_balance(self):
        return self.sats


def p2wdb_app(hits):
    async def cost(request):
        hits.append(request.path)
        return web.json_response({"success": True, "psfCost": 0.133})

    app = web.Application()
    app.router.add_get("/entry/cost/psf", cost)
    return app


@pytest.mark.asyncio
@pytest.mark.parametrize("psf,sats,expected", [
    ("1", 10_000, True),
    ("0.1", 10_000, False),
    ("1", 1_000, False),
])
async def test_check_for_sufficient_funds(psf, sats, expected):
    hits = []
    async with TestServer(p2wdb_app(hits)) as server:
        client = P2wdbClient(str(server.make_url("")), PsfWallet(psf, sats), PSF)
        try:
            assert await client.check_for_sufficient_funds("KxTestWif") is expected
            # cost is cached between checks
            await client.check_for_sufficient_funds("KxTestWif")
        finally:
            await client.close()
    assert hits == ["/entry/cost/psf"]


@pytest.mark.asyncio
async def test_foreign_credential_rejected():
    client = P2wdbClient("http://127.0.0.1:1", PsfWallet("1", 10_000), PSF)
    with pytest.raises(ValueError):
        await client.check_for_sufficient_funds("KyOtherWif")


@pytest.mark.asyncio
async def test_unreachable_server_is_transient():
    async def broken(request):
        return web.Response(status=502)

    app = web.Application()
    app.router.add_get("/entry/cost/psf", broken)
    async with TestServer(app) as server:
        client = P2wdbClient(str(server.make_url("")), PsfWallet("1", 10_000), PSF)
        try:
            with pytest.raises(TransientError):
                await client.get_write_cost()
        finally:
            await client.close()


@pytest.mark.asyncio
@pytest.mark.parametrize("reply", [{"success": True}, {"psfCost": "lots"}, None, [0.133]])
async def test_unexpected_cost_reply_is_transient(reply):
    async def odd(request):
        return web.json_response(reply)

    app = web.Application()
    app.router.add_get("/entry/cost/psf", odd)
    async with TestServer(app) as server:
        client = P2wdbClient(str(server.make_url("")), PsfWallet("1", 10_000), PSF)
        try:
            with pytest.raises(TransientError) as exc:
                await client.get_write_cost()
            assert exc.value.__cause__ is not None
        finally:
            await client.close()
