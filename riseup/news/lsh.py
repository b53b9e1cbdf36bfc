"""
Banded LSH index over MinHash signatures.

WHY banding:
  Comparing every new article against every recent article is O(n*m).
  Splitting each 128-slot signature into b bands of r rows and bucketing
  on the exact band contents means two articles are compared only if at
  least one band matches exactly. P(candidate) = 1 - (1 - s^r)^b for true
  similarity s.

BAND MATH (defaults):
  5 bands, rows = ceil(128 / 5) = 26. The last band holds the remaining
  24 rows. The band count is what moves the S-curve; keep it configured,
  not guessed.

Bucket keys are "band{i}:{v0-v1-...}" so buckets from different bands
never collide. Candidates are deduplicated by identity (id, else
content_hash) and the query article itself is never reported.

REF: Leskovec, Rajaraman, Ullman, "Mining of Massive Datasets" Ch. 3.4
"""

import logging
import math
from collections import defaultdict
from typing import Dict, Iterable, List, Sequence, Tuple

from riseup.news.hashing import DEFAULT_NUM_HASHES, jaccard_similarity
from riseup.schemas import StoredArticle

logger = logging.getLogger(__name__)

DEFAULT_NUM_BANDS = 5


def identity_key(article: StoredArticle) -> str:
    return article.id or article.content_hash


class LSHIndex:
    """In-memory LSH index. Built fresh per refresh, never shared across calls."""

    def __init__(self, num_bands: int = DEFAULT_NUM_BANDS, num_hashes: int = DEFAULT_NUM_HASHES):
        if num_bands <= 0:
            raise ValueError("num_bands must be positive")
        self.num_bands = num_bands
        self.num_hashes = num_hashes
        self.rows_per_band = math.ceil(num_hashes / num_bands)
        self._buckets: Dict[str, List[StoredArticle]] = defaultdict(list)

    @classmethod
    def from_articles(
        cls,
        articles: Iterable[StoredArticle],
        num_bands: int = DEFAULT_NUM_BANDS,
        num_hashes: int = DEFAULT_NUM_HASHES,
    ) -> "LSHIndex":
        index = cls(num_bands=num_bands, num_hashes=num_hashes)
        for article in articles:
            index.add(article)
        return index

    def band_keys(self, signature: Sequence[int]) -> List[str]:
        keys = []
        for band in range(self.num_bands):
            start = band * self.rows_per_band
            if start >= len(signature):
                break
            end = min(start + self.rows_per_band, len(signature))
            rows = "-".join(str(v) for v in signature[start:end])
            keys.append(f"band{band}:{rows}")
        return keys

    def add(self, article: StoredArticle) -> None:
        for key in self.band_keys(article.min_hash):
            self._buckets[key].append(article)

    def candidates(self, article: StoredArticle) -> List[StoredArticle]:
        """Union of every bucket the article falls into, minus itself."""
        own_key = identity_key(article)
        seen = set()
        found: List[StoredArticle] = []
        for key in self.band_keys(article.min_hash):
            for other in self._buckets.get(key, ()):
                other_key = identity_key(other)
                if other_key == own_key or other_key in seen:
                    continue
                seen.add(other_key)
                found.append(other)
        return found

    def find_similar(
        self, article: StoredArticle, threshold: float = 0.8
    ) -> List[Tuple[StoredArticle, float]]:
        """Candidates whose estimated Jaccard similarity is >= threshold, best first."""
        matches = []
        for other in self.candidates(article):
            similarity = jaccard_similarity(article.min_hash, other.min_hash)
            if similarity >= threshold:
                matches.append((other, similarity))
        matches.sort(key=lambda m: m[1], reverse=True)
        return matches

    def is_duplicate(self, article: StoredArticle, threshold: float = 0.8) -> bool:
        return len(self.find_similar(article, threshold)) > 0

    def get_stats(self) -> Dict[str, float]:
        sizes = [len(bucket) for bucket in self._buckets.values()]
        return {
            "buckets": len(sizes),
            "articles": sum(sizes),
            "avg_bucket_size": (sum(sizes) / len(sizes)) if sizes else 0.0,
            "max_bucket_size": max(sizes) if sizes else 0,
        }
