"""
BlockRegistry — closed, read-only map of block id → operations.

Built once at startup from ``BlockDefinition`` objects; nothing can be
registered after construction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping

from blocks.strategies import OperationStrategy
from utils.errors import RegistryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlockDefinition:
    block_id: str
    operations: Mapping[str, OperationStrategy]
    config: Mapping[str, Any] = field(default_factory=dict)
    # Session-backed blocks go through the AuthGuard before dispatch.
    requires_session: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "operations", MappingProxyType(dict(self.operations)))
        object.__setattr__(self, "config", MappingProxyType(dict(self.config)))


@dataclass(frozen=True)
class ResolvedOperation:
    block: BlockDefinition
    operation: str
    strategy: OperationStrategy


class BlockRegistry:
    """Lookup of block operations by (block id, operation name)."""

    def __init__(self, blocks: Iterable[BlockDefinition]) -> None:
        registered: Dict[str, BlockDefinition] = {}
        for block in blocks:
            if block.block_id in registered:
                raise ValueError(f"Duplicate block id '{block.block_id}'")
            registered[block.block_id] = block
        self._blocks: Mapping[str, BlockDefinition] = MappingProxyType(registered)
        logger.info("Registered %d blocks: %s", len(registered), ", ".join(registered))

    def resolve(self, block_id: str, operation: str) -> ResolvedOperation:
        """
        Raises
        ------
        RegistryError
            ``unknown-block`` or ``unknown-operation``.
        """
        block = self._blocks.get(block_id)
        if block is None:
            raise RegistryError(f"Block '{block_id}' not found", kind="unknown-block")
        strategy = block.operations.get(operation)
        if strategy is None:
            raise RegistryError(
                f"Operation '{operation}' not found in block '{block_id}'",
                kind="unknown-operation",
            )
        return ResolvedOperation(block=block, operation=operation, strategy=strategy)

    def get(self, block_id: str) -> BlockDefinition | None:
        return self._blocks.get(block_id)

    def list_blocks(self) -> List[Dict[str, Any]]:
        return [
            {
                "blockId": block.block_id,
                "operations": sorted(block.operations),
                "requiresSession": block.requires_session,
            }
            for block in self._blocks.values()
        ]
