"""
etherstate – ContractCall
=========================
Describes one read-only contract call: a lazily resolved target, an ABI and
the function to call. Encodes call data and decodes return data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Sequence, Tuple

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi.exceptions import DecodingError, EncodingError
from eth_utils import function_signature_to_4byte_selector, is_address, to_checksum_address
from eth_utils.abi import collapse_if_tuple

from etherstate.abi_registry import entry_signature
from etherstate.exceptions import ActionDecodeError, InvalidTargetError


def _find_function(abi: Sequence[Dict[str, Any]], function: str) -> Dict[str, Any]:
    functions = [e for e in abi if e.get("type") == "function"]
    if "(" in function:
        matches = [e for e in functions if entry_signature(e) == function]
    else:
        matches = [e for e in functions if e.get("name") == function]
    if not matches:
        raise ValueError(f"Function {function!r} not found in ABI")
    if len(matches) > 1:
        raise ValueError(
            f"Function {function!r} is overloaded; use a full signature such as "
            f"{entry_signature(matches[0])!r}"
        )
    return matches[0]


@dataclass(frozen=True, slots=True)
class ContractCall:
    """
    Args:
        target: zero-argument callable returning the contract address. It is
            called again on every firing so the address may change over time.
        abi: ABI entries of the target contract.
        function: function name, or full signature for overloaded functions.
    """

    target: Callable[[], str]
    abi: Sequence[Dict[str, Any]] = field(repr=False)
    function: str
    signature: str = field(init=False)
    selector: bytes = field(init=False, repr=False)
    input_types: Tuple[str, ...] = field(init=False, repr=False)
    output_types: Tuple[str, ...] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        entry = _find_function(self.abi, self.function)
        signature = entry_signature(entry)
        object.__setattr__(self, "signature", signature)
        object.__setattr__(self, "selector", function_signature_to_4byte_selector(signature))
        object.__setattr__(
            self, "input_types", tuple(collapse_if_tuple(p) for p in entry.get("inputs", []))
        )
        object.__setattr__(
            self, "output_types", tuple(collapse_if_tuple(p) for p in entry.get("outputs", []))
        )

    def resolve_target(self) -> str:
        target = self.target()
        if not isinstance(target, str) or not is_address(target):
            raise InvalidTargetError(target)
        return to_checksum_address(target)

    def encode(self, args: Sequence[Any]) -> bytes:
        if len(args) != len(self.input_types):
            raise ValueError(
                f"{self.signature} expects {len(self.input_types)} argument(s), got {len(args)}"
            )
        try:
            return self.selector + abi_encode(list(self.input_types), list(args))
        except EncodingError as exc:
            raise ValueError(f"Cannot encode arguments for {self.signature}: {exc}") from exc

    def decode(self, data: bytes) -> List[Any]:
        try:
            return list(abi_decode(list(self.output_types), bytes(data)))
        except (DecodingError, ValueError, TypeError) as exc:
            raise ActionDecodeError(
                f"Return data does not match {self.signature} -> "
                f"({','.join(self.output_types)}): {exc}"
            ) from exc
