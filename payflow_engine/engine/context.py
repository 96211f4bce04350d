"""
Execution context for one workflow run.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic_core import to_jsonable_python

from ..models.credential import ProviderCredential
from ..models.execution import NodeExecutionResult

LAMPORTS_PER_SOL = 1_000_000_000


@dataclass
class ExecutionContext:
    """In-memory accumulator of trigger output and per-node outputs."""

    execution_id: str
    user_id: str
    trigger_output: Dict[str, Any]
    workflow_id: Optional[str] = None
    credentials: Dict[str, ProviderCredential] = field(default_factory=dict)
    # Legacy {"output": ...} wrappers, keyed by node id
    node_results: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    # Adapter-shaped results, keyed by node id
    node_outputs: Dict[str, NodeExecutionResult] = field(default_factory=dict)

    def record(self, node_id: str, output: Any, logs: Optional[List[str]] = None) -> NodeExecutionResult:
        """Store a node's output in both the legacy and the adapter-shaped maps."""
        result = NodeExecutionResult(success=True, output=output, logs=list(logs or []))
        self.record_result(node_id, result)
        return result

    def record_result(self, node_id: str, result: NodeExecutionResult) -> None:
        self.node_results[node_id] = {"output": result.output}
        self.node_outputs[node_id] = result

    def get_output(self, node_id: str) -> Any:
        entry = self.node_results.get(node_id)
        return entry["output"] if entry else None

    def has_output(self, node_id: str) -> bool:
        return node_id in self.node_results

    def get_credential(self, provider: str) -> Optional[ProviderCredential]:
        return self.credentials.get(provider)

    def node_outputs_snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Plain-dict copy of node_outputs for handing to node inputs."""
        return {
            node_id: result.model_dump(mode="json", by_alias=True)
            for node_id, result in self.node_outputs.items()
        }

    def to_result_dict(self) -> Dict[str, Any]:
        """JSON-safe view persisted with a completed execution. Credentials are left out."""
        return to_jsonable_python(
            {"trigger": {"output": self.trigger_output}, **self.node_results},
            fallback=str,
        )


def normalize_trigger_output(trigger_output: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Flatten the first transaction of a blockchain-watch payload.

    Adds signature, slot, blockTime, amount (SOL), from and to next to the
    original payload so workflows can reference {{trigger.amount}} directly.
    Payloads without transactions are returned as a shallow copy.
    """
    payload = dict(trigger_output or {})
    transactions = payload.get("transactions")
    if not isinstance(transactions, list) or not transactions or not isinstance(transactions[0], dict):
        return payload

    tx = transactions[0]
    signatures = (tx.get("transaction") or {}).get("signatures") or []
    payload.update(
        {
            "signature": tx.get("signature") or (signatures[0] if signatures else None),
            "slot": tx.get("slot"),
            "blockTime": tx.get("blockTime"),
            "amount": _extract_amount(tx),
            "from": _extract_from_address(tx),
            "to": _extract_to_address(tx),
        }
    )
    return payload


def _extract_amount(tx: Dict[str, Any]) -> float:
    meta = tx.get("meta") or {}
    pre, post = meta.get("preBalances"), meta.get("postBalances")
    if pre and post:
        return abs(post[0] - pre[0]) / LAMPORTS_PER_SOL

    transfers = tx.get("nativeTransfers") or []
    if transfers:
        return (transfers[0].get("amount") or 0) / LAMPORTS_PER_SOL
    return 0


def _account_keys(tx: Dict[str, Any]) -> List[str]:
    message = (tx.get("transaction") or {}).get("message") or {}
    return message.get("accountKeys") or []


def _extract_from_address(tx: Dict[str, Any]) -> str:
    transfers = tx.get("nativeTransfers") or []
    if transfers:
        return transfers[0].get("fromUserAccount") or ""
    keys = _account_keys(tx)
    return keys[0] if keys else ""


def _extract_to_address(tx: Dict[str, Any]) -> str:
    transfers = tx.get("nativeTransfers") or []
    if transfers:
        return transfers[0].get("toUserAccount") or ""
    keys = _account_keys(tx)
    return keys[1] if len(keys) > 1 else ""
