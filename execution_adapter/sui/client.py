"""Ledger access over Sui JSON-RPC."""

import base64
import itertools
import logging
from typing import Any, Iterable, Optional, Protocol, Sequence, Tuple

import requests

from tx_engine.deadline import Deadline
from tx_engine.errors import (
    DuplicateSubmission,
    LedgerRejection,
    NetworkError,
    SubmissionRejected,
    TimedOut,
)
from tx_engine.models import (
    BalanceChange,
    CreatedObject,
    ExecutionResult,
    ObjectRef,
    SimulationResult,
)
from tx_engine.objects import (
    SUI_COIN_TYPE,
    is_valid_address,
    normalize_address,
    normalize_type_tag,
)

from .models import IMMUTABLE, OBJECT_OWNED, SHARED, CoinBalance, InspectResult, LedgerObject

logger = logging.getLogger(__name__)

MAINNET_URL = "https://fullnode.mainnet.sui.io:443"
COIN_PAGE_SIZE = 50
MAX_COIN_PAGES = 10

_RETRYABLE_STATUS = frozenset((408, 425, 429, 500, 502, 503, 504))
_DUPLICATE_MARKERS = ("already executed", "transaction already", "duplicate")
_RESPONSE_OPTIONS = {
    "showEffects": True,
    "showBalanceChanges": True,
    "showObjectChanges": True,
}
_OBJECT_OPTIONS = {"showOwner": True}


class LedgerClient(Protocol):
    def get_objects(
        self, object_ids: Sequence[str], deadline: Deadline
    ) -> Tuple[LedgerObject, ...]:
        ...

    def reference_gas_price(self, deadline: Deadline) -> int:
        ...

    def gas_coins(self, owner: str, deadline: Deadline) -> Tuple[CoinBalance, ...]:
        ...

    def dry_run(self, tx_bytes: bytes, deadline: Deadline) -> SimulationResult:
        ...

    def dev_inspect(self, sender: str, kind_bytes: bytes, deadline: Deadline) -> InspectResult:
        ...

    def execute(
        self, tx_bytes: bytes, signatures: Sequence[str], deadline: Deadline
    ) -> ExecutionResult:
        ...

    def get_transaction(self, digest: str, deadline: Deadline) -> ExecutionResult:
        ...


class JsonRpcError(LedgerRejection):
    """Error object returned by the JSON-RPC endpoint."""

    def __init__(self, method: str, error: dict) -> None:
        message = str(error.get("message", "JSON-RPC error"))
        super().__init__(f"{method}: {message}", operation=method, payload=error)
        self.code = error.get("code")
        self.rpc_message = message


class JsonRpcLedgerClient:
    def __init__(self, url: str = MAINNET_URL, session: Optional[requests.Session] = None) -> None:
        self._url = url
        self._session = session or requests.Session()
        self._ids = itertools.count(1)

    def get_objects(
        self, object_ids: Sequence[str], deadline: Deadline
    ) -> Tuple[LedgerObject, ...]:
        """Objects that exist; missing ids are simply absent from the result."""

        ids = [normalize_address(object_id) for object_id in object_ids]
        entries = self._call("sui_multiGetObjects", [ids, _OBJECT_OPTIONS], deadline) or []
        found = []
        try:
            for entry in entries:
                data = entry.get("data")
                if data is None:
                    logger.debug("Object lookup error: %s", entry.get("error"))
                    continue
                found.append(parse_object(data))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise _malformed("sui_multiGetObjects", entries) from exc
        return tuple(found)

    def reference_gas_price(self, deadline: Deadline) -> int:
        price = self._call("suix_getReferenceGasPrice", [], deadline)
        try:
            return int(price)
        except (TypeError, ValueError) as exc:
            raise _malformed("suix_getReferenceGasPrice", price) from exc

    def gas_coins(self, owner: str, deadline: Deadline) -> Tuple[CoinBalance, ...]:
        coins = []
        cursor = None
        for _ in range(MAX_COIN_PAGES):
            page = self._call(
                "suix_getCoins",
                [normalize_address(owner), SUI_COIN_TYPE, cursor, COIN_PAGE_SIZE],
                deadline,
            ) or {}
            try:
                coins.extend(parse_coin(entry) for entry in page.get("data") or ())
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                raise _malformed("suix_getCoins", page) from exc
            if not page.get("hasNextPage"):
                break
            cursor = page.get("nextCursor")
        return tuple(coins)

    def dry_run(self, tx_bytes: bytes, deadline: Deadline) -> SimulationResult:
        try:
            result = self._call("sui_dryRunTransactionBlock", [_b64(tx_bytes)], deadline) or {}
        except JsonRpcError as exc:
            return SimulationResult(success=False, balance_changes=(), error=exc.rpc_message)
        status = (result.get("effects") or {}).get("status") or {}
        return SimulationResult(
            success=status.get("status") == "success",
            balance_changes=parse_balance_changes(result.get("balanceChanges") or ()),
            error=status.get("error"),
        )

    def dev_inspect(self, sender: str, kind_bytes: bytes, deadline: Deadline) -> InspectResult:
        """Evaluate ``TransactionKind`` bytes read-only on behalf of ``sender``."""

        try:
            result = self._call(
                "sui_devInspectTransactionBlock",
                [normalize_address(sender), _b64(kind_bytes), None, None],
                deadline,
            ) or {}
        except JsonRpcError as exc:
            return InspectResult(success=False, return_values=(), error=exc.rpc_message)
        error = result.get("error")
        return_values = tuple(
            tuple(bytes(value[0]) for value in entry.get("returnValues") or ())
            for entry in result.get("results") or ()
        )
        return InspectResult(success=error is None, return_values=return_values, error=error)

    def execute(
        self, tx_bytes: bytes, signatures: Sequence[str], deadline: Deadline
    ) -> ExecutionResult:
        try:
            result = self._call(
                "sui_executeTransactionBlock",
                [_b64(tx_bytes), list(signatures), _RESPONSE_OPTIONS, "WaitForLocalExecution"],
                deadline,
            ) or {}
        except JsonRpcError as exc:
            lowered = exc.rpc_message.lower()
            if any(marker in lowered for marker in _DUPLICATE_MARKERS):
                raise DuplicateSubmission(
                    exc.rpc_message, operation="submit", payload=exc.payload
                ) from exc
            raise SubmissionRejected(
                exc.rpc_message, operation="submit", payload=exc.payload
            ) from exc
        return parse_execution_result(result)

    def get_transaction(self, digest: str, deadline: Deadline) -> ExecutionResult:
        result = self._call(
            "sui_getTransactionBlock", [digest, _RESPONSE_OPTIONS], deadline
        ) or {}
        return parse_execution_result(result)

    def _call(self, method: str, params: list, deadline: Deadline) -> Any:
        timeout = deadline.check(method)
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        logger.debug("RPC %s", method)
        try:
            response = self._session.post(self._url, json=payload, timeout=timeout)
        except requests.Timeout as exc:
            raise TimedOut(f"{method} timed out.", operation=method) from exc
        except requests.RequestException as exc:
            raise NetworkError(f"{method} failed: {exc}", operation=method) from exc

        if response.status_code in _RETRYABLE_STATUS:
            raise NetworkError(
                f"{method} returned HTTP {response.status_code}.", operation=method
            )
        if response.status_code >= 400:
            raise LedgerRejection(
                f"{method} returned HTTP {response.status_code}.", operation=method
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise NetworkError(f"{method} returned a non-JSON body.", operation=method) from exc
        if body.get("error"):
            raise JsonRpcError(method, body["error"])
        return body.get("result")


def parse_balance_changes(entries: Iterable[dict]) -> Tuple[BalanceChange, ...]:
    return tuple(
        BalanceChange(
            owner=_owner(entry.get("owner")),
            coin_type=normalize_type_tag(entry["coinType"]),
            amount=int(entry["amount"]),
        )
        for entry in entries
    )


def parse_execution_result(result: dict) -> ExecutionResult:
    effects = result.get("effects") or {}
    status = effects.get("status") or {}
    if status.get("status") != "success":
        raise SubmissionRejected(
            status.get("error") or "Transaction failed on ledger.",
            operation="submit",
            payload=status,
        )
    created = tuple(
        CreatedObject(
            object_id=normalize_address(change["objectId"]),
            object_type=change.get("objectType", ""),
            shared=_owner(change.get("owner")) == SHARED,
        )
        for change in result.get("objectChanges") or ()
        if change.get("type") == "created"
    )
    return ExecutionResult(
        digest=result["digest"],
        finalized=True,
        effects=effects,
        created_objects=created,
        balance_changes=parse_balance_changes(result.get("balanceChanges") or ()),
    )


def parse_object(data: dict) -> LedgerObject:
    owner = data.get("owner")
    shared = owner.get("Shared") if isinstance(owner, dict) else None
    return LedgerObject(
        object_id=normalize_address(data["objectId"]),
        version=int(data["version"]),
        digest=data["digest"],
        owner=_object_owner(owner),
        initial_shared_version=int(shared["initial_shared_version"]) if shared else None,
    )


def parse_coin(entry: dict) -> CoinBalance:
    return CoinBalance(
        ref=ObjectRef(
            object_id=normalize_address(entry["coinObjectId"]),
            version=int(entry["version"]),
            digest=entry["digest"],
        ),
        balance=int(entry["balance"]),
    )


def _object_owner(owner: object) -> str:
    if isinstance(owner, dict) and "ObjectOwner" in owner:
        return OBJECT_OWNED
    if owner == "Immutable":
        return IMMUTABLE
    return _owner(owner)


def _owner(owner: object) -> str:
    if isinstance(owner, dict):
        if "Shared" in owner:
            return SHARED
        for key in ("AddressOwner", "ObjectOwner"):
            value = owner.get(key)
            if isinstance(value, str) and is_valid_address(value):
                return normalize_address(value)
    if isinstance(owner, str):
        return owner.lower()
    return "unknown"


def _malformed(method: str, payload: object) -> LedgerRejection:
    return LedgerRejection(f"{method} returned a malformed response.", operation=method, payload=payload)


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")
