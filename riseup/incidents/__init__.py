"""
Layer 2: Incidents.

Modules:
- extractor: Keyword/rule incident extraction from article text
- dedup: Haversine + time window + title similarity duplicate checks
- service: Batch extraction path and interactive submission path
"""

from riseup.incidents.dedup import IncidentDeduplicator
from riseup.incidents.extractor import IncidentExtractor
