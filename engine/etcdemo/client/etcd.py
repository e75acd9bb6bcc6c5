"""
Async etcd v2 keys API client.

Executes read/write/cas operations against one node and classifies every
outcome into ok, fail or info.
"""

from enum import Enum
from typing import Any

import httpx

from etcdemo.client.base import Client, ClientState, classify_timeout
from etcdemo.cluster.addresses import CLIENT_PORT, client_url
from etcdemo.errors import ClientStateError, EtcdClientError
from etcdemo.history.models import ErrorKind, Op, OpFunction, OpType
from etcdemo.logging import get_logger

logger = get_logger(__name__)

# etcd v2 error codes
ERROR_KEY_NOT_FOUND = 100
ERROR_COMPARE_FAILED = 101


class CasResult(str, Enum):
    """Outcome of a compare-and-swap request."""

    APPLIED = "applied"
    COMPARE_FAILED = "compare-failed"
    NOT_FOUND = "not-found"


def parse_long(s: str | None) -> int | None:
    """Parse a stored value to an int. Passes through None."""
    if s is None:
        return None
    try:
        return int(s)
    except ValueError as e:
        raise EtcdClientError(f"Unparseable value {s!r}") from e


def _error_code(response: httpx.Response) -> int | None:
    """Extract etcd's errorCode from an error response, if any."""
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        code = data.get("errorCode")
        return code if isinstance(code, int) else None
    return None


class EtcdClient(Client):
    """
    Client for one etcd node.

    Handles:
    - Quorum reads
    - Unconditional writes
    - Compare-and-swap via prevValue
    - Timeout classification (fail for reads, info for writes and cas)
    """

    def __init__(
        self,
        timeout_s: float = 5.0,
        client_port: int = CLIENT_PORT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize an unopened client template.

        Args:
            timeout_s: Response wait bound per request
            client_port: etcd client port
            transport: Optional httpx transport (tests)
        """
        self._timeout_s = timeout_s
        self._client_port = client_port
        self._transport = transport
        self._node: str | None = None
        self._client: httpx.AsyncClient | None = None
        self._state = ClientState.UNOPENED

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def node(self) -> str | None:
        return self._node

    def open(self, node: str) -> "EtcdClient":
        bound = EtcdClient(self._timeout_s, self._client_port, self._transport)
        bound._node = node
        bound._client = httpx.AsyncClient(
            base_url=client_url(node, self._client_port),
            timeout=self._timeout_s,
            transport=self._transport,
        )
        bound._state = ClientState.OPEN
        return bound

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None
        if self._state == ClientState.OPEN:
            self._state = ClientState.CLOSED

    def _require_client(self) -> httpx.AsyncClient:
        if self._state != ClientState.OPEN or self._client is None:
            raise ClientStateError(f"Client is {self._state.value}, not open")
        return self._client

    async def invoke(self, op: Op) -> Op:
        client = self._require_client()

        try:
            if op.f == OpFunction.READ:
                value = await self.get(client, op.key)
                return op.complete(OpType.OK, value=value, keep_value=False)

            if op.f == OpFunction.WRITE:
                await self.reset(client, op.key, op.value)
                return op.complete(OpType.OK)

            if op.f == OpFunction.CAS:
                old, new = op.value
                result = await self.cas(client, op.key, old, new)
                if result == CasResult.APPLIED:
                    return op.complete(OpType.OK)
                if result == CasResult.NOT_FOUND:
                    return op.complete(OpType.FAIL, error=ErrorKind.NOT_FOUND)
                return op.complete(OpType.FAIL)

            raise EtcdClientError(f"Unsupported operation {op.f.value}")

        except httpx.TimeoutException:
            return op.complete(classify_timeout(op.f), error=ErrorKind.TIMEOUT)

        except httpx.HTTPError as e:
            raise EtcdClientError(f"{self._node}: {type(e).__name__}: {e}") from e

    # =========================================================================
    # Keys API
    # =========================================================================

    async def get(self, client: httpx.AsyncClient, key: Any) -> int | None:
        """
        Read a key with quorum consistency.

        Returns:
            The stored int, or None when the key does not exist
        """
        response = await client.get(f"/v2/keys/{key}", params={"quorum": "true"})

        if response.status_code == 404 and _error_code(response) == ERROR_KEY_NOT_FOUND:
            return None
        if response.status_code != 200:
            raise self._unexpected("get", response)

        node = response.json().get("node", {})
        return parse_long(node.get("value"))

    async def reset(self, client: httpx.AsyncClient, key: Any, value: Any) -> None:
        """Unconditionally set a key."""
        response = await client.put(f"/v2/keys/{key}", data={"value": str(value)})

        if response.status_code not in (200, 201):
            raise self._unexpected("set", response)

    async def cas(self, client: httpx.AsyncClient, key: Any, old: Any, new: Any) -> CasResult:
        """Set a key to `new` iff its current value is `old`."""
        response = await client.put(
            f"/v2/keys/{key}",
            params={"prevValue": str(old)},
            data={"value": str(new)},
        )

        if response.status_code in (200, 201):
            return CasResult.APPLIED

        code = _error_code(response)
        if response.status_code == 412 and code == ERROR_COMPARE_FAILED:
            return CasResult.COMPARE_FAILED
        if response.status_code == 404 and code == ERROR_KEY_NOT_FOUND:
            return CasResult.NOT_FOUND
        raise self._unexpected("cas", response)

    def _unexpected(self, action: str, response: httpx.Response) -> EtcdClientError:
        code = _error_code(response)
        logger.warning(
            "%s: unexpected %s response status=%d errorCode=%s",
            self._node,
            action,
            response.status_code,
            code,
        )
        return EtcdClientError(
            f"{self._node}: {action} failed with status {response.status_code}",
            status_code=response.status_code,
            error_code=code,
        )
