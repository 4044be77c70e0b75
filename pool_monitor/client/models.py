"""链上数据模型"""

from dataclasses import dataclass


@dataclass
class TokenInfo:
    """ERC20 代币元数据"""

    address: str
    symbol: str
    decimals: int

    def scale(self, raw: int) -> float:
        return raw / 10**self.decimals


@dataclass
class Reserves:
    """Uniswap V2 池子储备"""

    reserve0: int
    reserve1: int
    block_timestamp_last: int
