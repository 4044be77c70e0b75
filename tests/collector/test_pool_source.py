# tests/collector/test_pool_source.py
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from pool_monitor.client.models import Reserves, TokenInfo
from pool_monitor.client.rpc import RpcClient, RpcError
from pool_monitor.collector.pool_source import PoolSource, SourceUnavailableError

POOL = "0xPool"
WETH = TokenInfo(address="0xWeth", symbol="WETH", decimals=18)
USDC = TokenInfo(address="0xUsdc", symbol="USDC", decimals=6)


def _rpc(reserve0: int = 10 * 10**18, reserve1: int = 25_000 * 10**6) -> MagicMock:
    rpc = MagicMock()
    rpc.get_token_addresses = AsyncMock(return_value=("0xWeth", "0xUsdc"))
    rpc.get_token_info = AsyncMock(side_effect=lambda addr: WETH if addr == "0xWeth" else USDC)
    rpc.get_reserves = AsyncMock(
        return_value=Reserves(reserve0=reserve0, reserve1=reserve1, block_timestamp_last=0)
    )
    return rpc


async def test_init_fetches_token_metadata():
    source = PoolSource(_rpc(), POOL, "b_per_a")

    await source.init()

    assert source.token0 == WETH
    assert source.token1 == USDC
    assert source.pair_name == "WETH/USDC"


async def test_b_per_a_prices_token0_in_token1():
    source = PoolSource(_rpc(), POOL, "b_per_a")
    await source.init()

    sample = await source.fetch_sample(1000)

    assert sample.price == pytest.approx(2500.0)
    assert sample.liquidity == pytest.approx(25_010.0)
    assert sample.timestamp == 1000
    assert sample.entity_id == POOL
    assert source.base_symbol == "WETH"
    assert source.quote_symbol == "USDC"


async def test_a_per_b_prices_token1_in_token0():
    source = PoolSource(_rpc(), POOL, "a_per_b")
    await source.init()

    sample = await source.fetch_sample(1000)

    assert sample.price == pytest.approx(0.0004)
    assert source.base_symbol == "USDC"
    assert source.quote_symbol == "WETH"


async def test_empty_reserves_unavailable():
    source = PoolSource(_rpc(reserve0=0), POOL, "b_per_a")
    await source.init()

    with pytest.raises(SourceUnavailableError):
        await source.fetch_sample(1000)


@pytest.mark.parametrize(
    "error",
    [RpcError(-32000, "header not found"), aiohttp.ClientError("reset"), TimeoutError()],
)
async def test_fetch_errors_become_source_unavailable(error):
    rpc = _rpc()
    source = PoolSource(rpc, POOL, "b_per_a")
    await source.init()
    rpc.get_reserves = AsyncMock(side_effect=error)

    with pytest.raises(SourceUnavailableError):
        await source.fetch_sample(1000)


async def test_fetch_before_init_raises():
    source = PoolSource(_rpc(), POOL, "b_per_a")

    with pytest.raises(RuntimeError):
        await source.fetch_sample(1000)


async def test_string_rpc_error_becomes_source_unavailable():
    rpc = RpcClient(url="http://rpc.test")
    response = MagicMock()
    response.status = 200
    response.json = AsyncMock(return_value={"jsonrpc": "2.0", "id": 1, "error": "rate limited"})
    session = MagicMock()
    session.post = AsyncMock(return_value=response)
    rpc._session = session
    source = PoolSource(rpc, POOL, "b_per_a")
    source.token0, source.token1 = WETH, USDC

    with pytest.raises(SourceUnavailableError):
        await source.fetch_sample(1000)
