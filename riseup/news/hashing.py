"""
Content fingerprints for article deduplication.

Two fingerprints per article:
  1. CONTENT HASH:  SHA-256 of the normalized text. Exact duplicates only.
  2. MINHASH:       128-slot signature over character k-shingles. Estimates
                    Jaccard similarity of the shingle sets (near-duplicates).

Normalization (both fingerprints): lower-case, collapse whitespace runs to
one space, strip. "Protest in  TEHRAN" and "protest in tehran" are the same
text as far as dedup is concerned.

The MinHash permutation family is datasketch's seeded universal hashing, so
signatures are stable across processes and safe to persist. Changing the
seed or num_hashes invalidates every stored signature.

REF: Broder, "On the resemblance and containment of documents" (1997)
"""

import hashlib
import logging
import re
from typing import Iterable, List, Sequence, Set, Tuple

from datasketch import MinHash

logger = logging.getLogger(__name__)

DEFAULT_NUM_HASHES = 128
DEFAULT_SHINGLE_SIZE = 3
MINHASH_SEED = 1

# Value left in a slot no shingle ever hashed into (empty shingle set).
EMPTY_SLOT = (1 << 32) - 1

_WHITESPACE = re.compile(r"\s+")


class SignatureMismatchError(ValueError):
    """Two signatures from different num_hashes configurations were compared."""


def normalize_text(text: str) -> str:
    return _WHITESPACE.sub(" ", (text or "").lower()).strip()


def compute_content_hash(text: str) -> str:
    """SHA-256 hex digest of the normalized text."""
    return hashlib.sha256(normalize_text(text).encode("utf-8")).hexdigest()


def generate_shingles(text: str, k: int = DEFAULT_SHINGLE_SIZE) -> Set[str]:
    """Character k-shingles of the normalized text.

    Text shorter than k becomes its own single shingle.
    """
    normalized = normalize_text(text)
    if len(normalized) < k:
        return {normalized}
    return {normalized[i:i + k] for i in range(len(normalized) - k + 1)}


def compute_min_hash_signature(
    shingles: Iterable[str], num_hashes: int = DEFAULT_NUM_HASHES
) -> List[int]:
    """Per-slot minimum hash over the shingle set.

    An empty set still yields num_hashes slots, all EMPTY_SLOT.
    """
    minhash = MinHash(num_perm=num_hashes, seed=MINHASH_SEED)
    encoded = [s.encode("utf-8") for s in shingles]
    if encoded:
        minhash.update_batch(encoded)
    return [int(v) for v in minhash.hashvalues]


def jaccard_similarity(sig_a: Sequence[int], sig_b: Sequence[int]) -> float:
    """Fraction of slots where the two signatures agree."""
    if len(sig_a) != len(sig_b):
        raise SignatureMismatchError(
            f"Signatures must have the same length ({len(sig_a)} != {len(sig_b)})"
        )
    if not sig_a:
        return 0.0
    matches = sum(1 for a, b in zip(sig_a, sig_b) if a == b)
    return matches / len(sig_a)


class ContentHasher:
    """Computes both fingerprints with one shingle/hash configuration."""

    def __init__(
        self,
        num_hashes: int = DEFAULT_NUM_HASHES,
        shingle_size: int = DEFAULT_SHINGLE_SIZE,
    ):
        self.num_hashes = num_hashes
        self.shingle_size = shingle_size

    def content_hash(self, text: str) -> str:
        return compute_content_hash(text)

    def signature(self, text: str) -> List[int]:
        return compute_min_hash_signature(
            generate_shingles(text, self.shingle_size), self.num_hashes
        )

    def fingerprint(self, text: str) -> Tuple[str, List[int]]:
        """(content_hash, min_hash_signature) for one text."""
        return self.content_hash(text), self.signature(text)
