"""Wrappers for external tools that produce alignment shards."""

from .diamond import DIAMOND_OUTFMT_FIELDS, DiamondOptions, run_diamond

__all__ = ["DIAMOND_OUTFMT_FIELDS", "DiamondOptions", "run_diamond"]
