"""
Operation strategies — the two ways a block operation can be executed.

  • ``NativeStrategy``    — a coroutine that performs the provider call
                            itself (SDK-driven, possibly multi-step).
  • ``TemplatedStrategy`` — pure data describing one REST call: method,
                            URL / header / payload builders, required
                            inputs and response extraction.

``OperationStrategy`` is the union of the two; the dispatcher matches on
the concrete type and takes exactly one execution path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple, Union

from utils.errors import ClientInputError

Credentials = Dict[str, Any]


@dataclass(frozen=True)
class BlockInputs:
    """
    Canonical inputs handed to a strategy.

    ``params``       the request params exactly as sent
    ``data_fields``  the record's field mapping (``dataFields``, ``fields``
                     or the flat params minus routing inputs)
    ``values``       positional row values for tabular targets
    ``config``       the owning block's static config
    """

    params: Mapping[str, Any]
    data_fields: Dict[str, Any]
    values: List[Any]
    config: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def get(self, key: str, default: Any = None) -> Any:
        return self.params.get(key, default)

    def require(self, key: str) -> Any:
        value = self.params.get(key)
        if value is None or value == "":
            raise ClientInputError(f"Missing required field: {key}", code="missing-fields")
        return value


NativeHandler = Callable[[Credentials, BlockInputs], Awaitable[Any]]


@dataclass(frozen=True)
class NativeStrategy:
    execute: NativeHandler
    method: str = "POST"
    # Routing inputs; excluded when flat params double as data fields.
    input_fields: Tuple[str, ...] = ()


@dataclass(frozen=True)
class TemplatedStrategy:
    method: str
    build_url: Callable[[BlockInputs, Mapping[str, Any]], str]
    build_headers: Callable[[Credentials], Dict[str, str]]
    build_payload: Optional[Callable[[BlockInputs], Any]] = None
    required_fields: Tuple[str, ...] = ()
    response_field: Optional[str] = None
    transform: Optional[Callable[[Any], Any]] = None

    @property
    def input_fields(self) -> Tuple[str, ...]:
        return self.required_fields

    def missing_fields(self, params: Mapping[str, Any]) -> List[str]:
        return [f for f in self.required_fields if params.get(f) in (None, "")]


OperationStrategy = Union[NativeStrategy, TemplatedStrategy]
