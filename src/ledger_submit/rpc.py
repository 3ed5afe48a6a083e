"""Node RPC transport: the three calls the submitter makes against a node."""
import asyncio
import json
import logging
from typing import Any, Protocol

from xrpl.asyncio.clients import AsyncJsonRpcClient
from xrpl.models import SubmitOnly
from xrpl.models.requests import AccountInfo, Tx
from xrpl.models.requests.request import Request
from xrpl.models.response import Response

import ledger_submit.constants as C

log = logging.getLogger("ledger_submit.rpc")


class RpcError(RuntimeError):
    """The node answered, but with a JSON-RPC error instead of a result."""

    def __init__(self, method: str, result: dict[str, Any]) -> None:
        self.method = method
        self.result = result
        super().__init__(f"{method} failed: {json.dumps(result, default=str)}")

    @property
    def error(self) -> str | None:
        return self.result.get("error")


class NodeClient(Protocol):
    async def fetch_sequence(self, node: str, address: str) -> int: ...
    async def fetch_transaction(self, node: str, tx_hash: str) -> dict | None: ...
    async def submit_transaction(self, node: str, blob: str) -> dict: ...


class NodeRpc:
    """xrpl-py JSON-RPC client per node url, every request bounded by ``timeout``."""

    def __init__(self, timeout: float = C.RPC_TIMEOUT) -> None:
        self.timeout = timeout
        self._clients: dict[str, AsyncJsonRpcClient] = {}

    def client_for(self, node: str) -> AsyncJsonRpcClient:
        client = self._clients.get(node)
        if client is None:
            client = AsyncJsonRpcClient(node)
            self._clients[node] = client
        return client

    async def _rpc(self, node: str, req: Request, *, t: float | None = None) -> Response:
        return await asyncio.wait_for(self.client_for(node).request(req), timeout=t or self.timeout)

    async def fetch_sequence(self, node: str, address: str) -> int:
        # "current" includes queued txns; "validated" could hand back an already used sequence.
        r = await self._rpc(node, AccountInfo(account=address, ledger_index="current", strict=True))
        if not r.is_successful():
            raise RpcError("account_info", r.result)
        seq = int(r.result["account_data"]["Sequence"])
        log.debug("account_info %s seq=%s via %s", address, seq, node)
        return seq

    async def fetch_transaction(self, node: str, tx_hash: str) -> dict | None:
        r = await self._rpc(node, Tx(transaction=tx_hash))
        if r.is_successful():
            return r.result
        if r.result.get("error") == "txnNotFound":
            return None
        raise RpcError("tx", r.result)

    async def submit_transaction(self, node: str, blob: str) -> dict:
        r = await self._rpc(node, SubmitOnly(tx_blob=blob))
        if not r.is_successful():
            raise RpcError("submit", r.result)
        log.debug("submit via %s -> %s", node, r.result.get("engine_result"))
        return r.result
