# pool_monitor/collector/pool_source.py
import asyncio
import logging

import aiohttp

from pool_monitor.client.models import TokenInfo
from pool_monitor.client.rpc import RpcClient, RpcError
from pool_monitor.config import PriceBasis
from pool_monitor.storage.models import Sample

logger = logging.getLogger(__name__)


class SourceUnavailableError(Exception):
    """价格源获取失败，本轮跳过"""


class PoolSource:
    """单个 Uniswap V2 池子的储备读取与价格计算

    Token metadata is fetched once in ``init()``; afterwards every
    ``fetch_sample()`` costs a single ``getReserves`` call.
    """

    def __init__(self, rpc: RpcClient, address: str, price_basis: PriceBasis):
        self.rpc = rpc
        self.address = address
        self.price_basis = price_basis
        self.token0: TokenInfo | None = None
        self.token1: TokenInfo | None = None
        self.last_reserves: tuple[float, float] | None = None

    async def init(self) -> None:
        token0_address, token1_address = await self.rpc.get_token_addresses(self.address)
        self.token0, self.token1 = await asyncio.gather(
            self.rpc.get_token_info(token0_address),
            self.rpc.get_token_info(token1_address),
        )
        logger.info(
            f"Registered pool {self.address}: {self.pair_name} "
            f"(price in {self.quote_symbol} per {self.base_symbol})"
        )

    def _tokens(self) -> tuple[TokenInfo, TokenInfo]:
        if self.token0 is None or self.token1 is None:
            raise RuntimeError(f"Pool {self.address} not initialized")
        return self.token0, self.token1

    @property
    def pair_name(self) -> str:
        token0, token1 = self._tokens()
        return f"{token0.symbol}/{token1.symbol}"

    @property
    def base_symbol(self) -> str:
        token0, token1 = self._tokens()
        return token1.symbol if self.price_basis == "a_per_b" else token0.symbol

    @property
    def quote_symbol(self) -> str:
        token0, token1 = self._tokens()
        return token0.symbol if self.price_basis == "a_per_b" else token1.symbol

    def calculate_price(self, reserve_a: float, reserve_b: float) -> float:
        if self.price_basis == "a_per_b":
            return reserve_a / reserve_b
        return reserve_b / reserve_a

    async def fetch_sample(self, timestamp: int) -> Sample:
        token0, token1 = self._tokens()
        try:
            reserves = await self.rpc.get_reserves(self.address)
        except (RpcError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SourceUnavailableError(f"getReserves failed for {self.address}: {e}") from e

        reserve_a = token0.scale(reserves.reserve0)
        reserve_b = token1.scale(reserves.reserve1)
        if reserve_a <= 0 or reserve_b <= 0:
            raise SourceUnavailableError(
                f"Pool {self.address} has empty reserves ({reserve_a}, {reserve_b})"
            )

        self.last_reserves = (reserve_a, reserve_b)
        return Sample(
            entity_id=self.address,
            timestamp=timestamp,
            price=self.calculate_price(reserve_a, reserve_b),
            liquidity=reserve_a + reserve_b,
        )
