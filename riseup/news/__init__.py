"""
Layer 1: News ingestion and deduplication.

Modules:
- sources: Perplexity / Telegram / Twitter adapters
- hashing: SHA-256 content hash + MinHash signatures
- lsh: Banded LSH index over MinHash signatures
- dedup: Exact-then-near duplicate classification against the recent window
- service: Refresh orchestration (fetch -> dedup -> persist -> side effects)
- channels: User channel suggestions
"""

from riseup.news.dedup import ArticleDeduplicator
from riseup.news.service import NewsService
