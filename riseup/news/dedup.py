"""
Two-tier article deduplication against the recent window.

DEDUP PIPELINE (per new item, in input order):
  1. EXACT:  content hash already in the recent window  -> drop
  2. NEAR:   LSH finds a recent article with estimated
             Jaccard >= threshold (default 0.8)           -> drop
  3. otherwise                                            -> keep

The recent window is read-only here. The hash set and LSH index are
rebuilt from it on every call, so nothing is shared between refreshes.

NOTE: new items are NOT compared with each other. Two near-identical
items that both arrive in the same batch both survive; only the recent
persisted window is used as reference.

Recent rows whose signature length differs from num_hashes are treated
as corrupt: they still count for exact-hash matching but never enter
the LSH index. Unreadable stored signatures arrive here as [] and are
skipped the same way.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from riseup.news.hashing import ContentHasher, DEFAULT_NUM_HASHES, DEFAULT_SHINGLE_SIZE
from riseup.news.lsh import DEFAULT_NUM_BANDS, LSHIndex
from riseup.schemas import RawItem, StoredArticle

logger = logging.getLogger(__name__)


class Verdict(str, Enum):
    NOVEL = "novel"
    EXACT = "exact"
    NEAR = "near"


@dataclass
class Classification:
    article: StoredArticle
    verdict: Verdict
    matched_id: Optional[str] = None
    similarity: Optional[float] = None


@dataclass
class DedupReport:
    classifications: List[Classification] = field(default_factory=list)
    skipped_corrupt: int = 0

    @property
    def survivors(self) -> List[StoredArticle]:
        return [c.article for c in self.classifications if c.verdict == Verdict.NOVEL]

    def count(self, verdict: Verdict) -> int:
        return sum(1 for c in self.classifications if c.verdict == verdict)


class ArticleDeduplicator:
    """
    Filters a fetched batch against recently persisted articles.

    Catches:
    - The same story syndicated verbatim by several channels (exact)
    - Copies with light edits, different whitespace or a changed byline (near)
    """

    def __init__(
        self,
        threshold: float = 0.8,
        num_hashes: int = DEFAULT_NUM_HASHES,
        shingle_size: int = DEFAULT_SHINGLE_SIZE,
        num_bands: int = DEFAULT_NUM_BANDS,
    ):
        """
        Args:
            threshold: Estimated Jaccard similarity at or above which an item
                       is a near-duplicate. 0.8 = near-identical text only.
            num_hashes: MinHash signature length. Must match stored rows.
            shingle_size: Characters per shingle.
            num_bands: LSH bands. ceil(num_hashes / num_bands) rows each.
        """
        self.threshold = threshold
        self.num_bands = num_bands
        self.hasher = ContentHasher(num_hashes=num_hashes, shingle_size=shingle_size)

    @property
    def num_hashes(self) -> int:
        return self.hasher.num_hashes

    def fingerprint(self, item: RawItem) -> StoredArticle:
        content_hash, signature = self.hasher.fingerprint(item.body_text)
        return StoredArticle.from_raw(item, content_hash=content_hash, min_hash=signature)

    def classify(self, items: Sequence[RawItem], recent: Sequence[StoredArticle]) -> DedupReport:
        """Fingerprint every item and label it novel, exact or near."""
        report = DedupReport()
        if not items:
            return report

        candidates = [self.fingerprint(item) for item in items]

        recent_hashes = {a.content_hash for a in recent}
        index = LSHIndex(num_bands=self.num_bands, num_hashes=self.num_hashes)
        for article in recent:
            if len(article.min_hash) != self.num_hashes:
                report.skipped_corrupt += 1
                continue
            index.add(article)

        if report.skipped_corrupt:
            logger.warning(
                f"[DEDUP] Skipped {report.skipped_corrupt} recent articles with "
                f"signature length != {self.num_hashes} (corrupt or unreadable)"
            )

        for article in candidates:
            if article.content_hash in recent_hashes:
                report.classifications.append(Classification(article, Verdict.EXACT))
                continue
            matches = index.find_similar(article, self.threshold)
            if matches:
                best, similarity = matches[0]
                report.classifications.append(
                    Classification(article, Verdict.NEAR, matched_id=best.id, similarity=similarity)
                )
                continue
            report.classifications.append(Classification(article, Verdict.NOVEL))

        stats = index.get_stats()
        logger.info(
            f"[DEDUP] {len(candidates)} -> {len(report.survivors)} "
            f"(exact={report.count(Verdict.EXACT)}, near={report.count(Verdict.NEAR)}, "
            f"buckets={stats['buckets']}, max_bucket={stats['max_bucket_size']})"
        )
        return report

    def process(self, items: Sequence[RawItem], recent: Sequence[StoredArticle]) -> List[StoredArticle]:
        """Survivors of a batch, fingerprinted and ready to persist."""
        return self.classify(items, recent).survivors
