"""以太坊 JSON-RPC 客户端"""

import itertools
from dataclasses import dataclass, field
from typing import Any

import aiohttp
from eth_abi import decode
from eth_abi.exceptions import DecodingError

from pool_monitor.client.models import Reserves, TokenInfo

# 函数选择器
SIG_GET_RESERVES = "0x0902f1ac"
SIG_TOKEN0 = "0x0dfe1681"
SIG_TOKEN1 = "0xd21220a7"
SIG_DECIMALS = "0x313ce567"
SIG_SYMBOL = "0x95d89b41"


class RpcError(Exception):
    """JSON-RPC 错误"""

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


@dataclass
class RpcClient:
    """JSON-RPC 客户端，只读 eth_call"""

    url: str
    timeout: float = 10
    _session: aiohttp.ClientSession | None = field(default=None, repr=False)
    _ids: itertools.count = field(default_factory=lambda: itertools.count(1), repr=False)

    async def _request(self, method: str, params: list[Any]) -> Any:
        """发送 JSON-RPC 请求"""
        if self._session is None:
            raise RuntimeError("Session not initialized. Use 'async with' context.")

        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        response = await self._session.post(self.url, json=payload)

        if response.status != 200:
            error_text = await response.text()
            raise RpcError(response.status, error_text)

        try:
            data = await response.json(content_type=None)
        except (ValueError, UnicodeDecodeError):
            raise RpcError(-1, "Malformed JSON-RPC response")

        if not isinstance(data, dict):
            raise RpcError(-1, f"Unexpected JSON-RPC response: {data!r}")
        if data.get("error"):
            error = data["error"]
            if not isinstance(error, dict):
                raise RpcError(-1, str(error))
            raise RpcError(error.get("code", -1), error.get("message", str(error)))
        if "result" not in data:
            raise RpcError(-1, "JSON-RPC response has no result")

        return data["result"]

    async def init(self) -> None:
        self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "RpcClient":
        await self.init()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def eth_call(self, to: str, data: str) -> bytes:
        result = await self._request("eth_call", [{"to": to, "data": data}, "latest"])
        if not isinstance(result, str) or not result.startswith("0x"):
            raise RpcError(-1, f"Invalid eth_call result: {result!r}")
        try:
            return bytes.fromhex(result[2:])
        except ValueError:
            raise RpcError(-1, f"Invalid eth_call result: {result!r}")

    async def _call_decode(self, to: str, data: str, types: list[str]) -> tuple[Any, ...]:
        raw = await self.eth_call(to, data)
        try:
            return decode(types, raw)
        except DecodingError as e:
            raise RpcError(-1, f"Cannot decode {data} from {to}: {e}")

    async def get_reserves(self, pool: str) -> Reserves:
        """获取池子储备"""
        reserve0, reserve1, ts = await self._call_decode(
            pool, SIG_GET_RESERVES, ["uint112", "uint112", "uint32"]
        )
        return Reserves(reserve0=reserve0, reserve1=reserve1, block_timestamp_last=ts)

    async def get_token_addresses(self, pool: str) -> tuple[str, str]:
        (token0,) = await self._call_decode(pool, SIG_TOKEN0, ["address"])
        (token1,) = await self._call_decode(pool, SIG_TOKEN1, ["address"])
        return token0, token1

    async def get_token_info(self, token: str) -> TokenInfo:
        """获取代币 symbol 和 decimals"""
        (decimals,) = await self._call_decode(token, SIG_DECIMALS, ["uint8"])
        raw = await self.eth_call(token, SIG_SYMBOL)
        return TokenInfo(address=token, symbol=self._decode_symbol(raw), decimals=decimals)

    @staticmethod
    def _decode_symbol(raw: bytes) -> str:
        # 部分老代币 (如 MKR) 返回 bytes32
        if len(raw) == 32:
            return raw.rstrip(b"\x00").decode("utf-8", errors="replace")
        try:
            (symbol,) = decode(["string"], raw)
        except DecodingError as e:
            raise RpcError(-1, f"Cannot decode symbol: {e}")
        return str(symbol)
