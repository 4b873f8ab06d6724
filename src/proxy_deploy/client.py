# client.py
# Chain clients — the collaborators that actually create modules on chain.
#
# The orchestrator only sees the ChainClient protocol. Every failure a client
# can produce surfaces as ClientError; nothing here retries a creation call.

import hashlib
import itertools
import time
from typing import Any, Protocol

import httpx

from proxy_deploy.errors import ClientError
from proxy_deploy.models import DeploymentReceipt


class ChainClient(Protocol):
    def create_upgradeable_module(
        self,
        factory: str,
        init_args: list[Any],
        initializer: str,
        kind: str = "uups",
    ) -> tuple[str, DeploymentReceipt]: ...

    def current_account(self) -> str: ...

    def now(self) -> int: ...


# ---------------------------------------------------------------------------
# JSON-RPC gateway client
# ---------------------------------------------------------------------------


class HttpChainClient:
    """
    JSON-RPC 2.0 client for a deployment gateway node.

    Account and clock come from the standard `eth_accounts` and
    `eth_getBlockByNumber` calls. Proxy creation goes through the gateway's
    `proxy_deploy` method, which deploys implementation and proxy from the
    factory artifact and runs the initializer exactly once.
    """

    def __init__(
        self,
        rpc_url: str,
        api_key: str | None = None,
        timeout: float = 120.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._url = rpc_url
        self._http = httpx.Client(headers=headers, timeout=timeout, transport=transport)
        self._ids = itertools.count(1)

    def _call(self, method: str, params: list[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        try:
            response = self._http.post(self._url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as exc:
            raise ClientError(f"{method} failed: {exc}") from exc
        except ValueError as exc:
            raise ClientError(f"{method} returned a non-JSON body: {exc}") from exc

        if not isinstance(body, dict):
            raise ClientError(f"{method} returned a non-object body: {body!r}")
        if body.get("error"):
            error = body["error"]
            if not isinstance(error, dict):
                raise ClientError(f"{method} rejected: {error!r}")
            raise ClientError(
                f"{method} rejected: {error.get('message', error)} "
                f"(code {error.get('code', '?')})"
            )
        return body.get("result")

    def current_account(self) -> str:
        accounts = self._call("eth_accounts", [])
        if not isinstance(accounts, list) or not accounts:
            raise ClientError("Gateway exposes no signing account.")
        return accounts[0]

    def now(self) -> int:
        block = self._call("eth_getBlockByNumber", ["latest", False])
        try:
            return int(block["timestamp"], 16)
        except (TypeError, KeyError, ValueError) as exc:
            raise ClientError(f"Malformed latest block: {block!r}") from exc

    def create_upgradeable_module(
        self,
        factory: str,
        init_args: list[Any],
        initializer: str,
        kind: str = "uups",
    ) -> tuple[str, DeploymentReceipt]:
        result = self._call(
            "proxy_deploy",
            [factory, init_args, {"initializer": initializer, "kind": kind}],
        )
        address = result.get("address") if isinstance(result, dict) else None
        if not address or not isinstance(address, str):
            raise ClientError(f"proxy_deploy returned no address for {factory}: {result!r}")

        # The proxy exists once an address comes back; name it in any error below.
        block = result.get("blockNumber")
        try:
            receipt = DeploymentReceipt(
                transaction_hash=result.get("transactionHash"),
                block_number=int(block, 16) if isinstance(block, str) else block,
            )
        except (ValueError, TypeError) as exc:
            raise ClientError(
                f"{factory} created at {address} but the receipt is malformed: {exc}"
            ) from exc
        return address, receipt

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "HttpChainClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


# ---------------------------------------------------------------------------
# Offline client
# ---------------------------------------------------------------------------


class DryRunChainClient:
    """
    Offline stand-in that never touches a network.

    Addresses are deterministic: the last 20 bytes of
    SHA256(account:nonce:factory), so the same plan always yields the same
    addresses. Clock is the local wall clock unless `clock` is given.
    """

    def __init__(self, account: str = "0x" + "00" * 20, clock=None) -> None:
        self._account = account
        self._clock = clock or (lambda: int(time.time()))
        self._nonce = 0
        self.calls: list[tuple[str, list[Any], str, str]] = []

    def current_account(self) -> str:
        return self._account

    def now(self) -> int:
        return self._clock()

    def create_upgradeable_module(
        self,
        factory: str,
        init_args: list[Any],
        initializer: str,
        kind: str = "uups",
    ) -> tuple[str, DeploymentReceipt]:
        self.calls.append((factory, list(init_args), initializer, kind))
        seed = f"{self._account}:{self._nonce}:{factory}".encode("utf-8")
        digest = hashlib.sha256(seed).hexdigest()
        self._nonce += 1
        receipt = DeploymentReceipt(transaction_hash="0x" + digest, block_number=self._nonce)
        return "0x" + digest[-40:], receipt
