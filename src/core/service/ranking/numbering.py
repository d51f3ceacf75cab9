"""Consecutive per-level block numbering by creation order."""

from typing import Dict, Iterable, List

from src.core.service.indexer.models import Block
from src.core.service.ranking.snapshots import creation_order_key


def compute_block_numbers_locally(blocks: Iterable[Block]) -> Dict[str, int]:
    """
    Number blocks 1..N by creation order.

    The input order is irrelevant: blocks are always re-sorted by creation
    so a block keeps its number when later blocks are added or the caller
    sorted by another field.
    """
    ordered = sorted(blocks, key=creation_order_key)
    return {block.id.lower(): index + 1 for index, block in enumerate(ordered)}


def numbers_from_order(block_ids: List[str]) -> Dict[str, int]:
    """Numbers for ids already listed in creation order"""
    return {block_id.lower(): index + 1 for index, block_id in enumerate(block_ids)}
