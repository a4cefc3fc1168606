"""Posting - translation of orders into ledger postings, and their reversal."""

from posting.translator import (
    aggregate_stock,
    build_material_lines,
    find_cost_center_code,
    match_inventory,
    resolve_cost_center,
    translate,
    translate_reversal,
)
from posting.poster import LedgerPoster, build_journal_posting, format_quantity, stock_move_name
from posting.reversal import ReversalEngine

__all__ = [
    "aggregate_stock",
    "build_material_lines",
    "find_cost_center_code",
    "match_inventory",
    "resolve_cost_center",
    "translate",
    "translate_reversal",
    "LedgerPoster",
    "build_journal_posting",
    "format_quantity",
    "stock_move_name",
    "ReversalEngine",
]
