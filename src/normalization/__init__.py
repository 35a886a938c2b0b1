"""Auction Comparator - Title normalization and product signatures."""

from src.normalization.builder import SignatureBuilder
from src.normalization.canonical import canonicalize_text, compute_signatures

__all__ = ["SignatureBuilder", "canonicalize_text", "compute_signatures"]
