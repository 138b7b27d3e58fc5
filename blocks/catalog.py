"""
The closed set of blocks the registry is built from — add new blocks here.
"""

from __future__ import annotations

from typing import List

from blocks import airtable, gmail, google_sheets
from blocks.registry import BlockDefinition, BlockRegistry
from config.settings import Settings


def build_blocks(settings: Settings) -> List[BlockDefinition]:
    return [
        airtable.build_block(settings),
        gmail.build_block(settings),
        google_sheets.build_block(settings),
    ]


def build_registry(settings: Settings) -> BlockRegistry:
    return BlockRegistry(build_blocks(settings))
