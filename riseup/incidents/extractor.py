"""
Rule-based incident extraction from article text.

SCORING (per incident type):
  Each English/Farsi keyword found in "title + content" adds its weight.
  confidence = min(3 * sum(weights), 100)
  +20 (capped at 100) when a known location is mentioned.

An article yields a candidate for a type when the base score is >= 30.
One candidate per known location mentioned; with no location, a single
candidate at DEFAULT_LOCATION with confidence lowered by 20 (floor 10).
Only the 3 most confident candidates per article are kept.

Matching is plain lower-cased substring search. No stemming, no NER.
"""

import logging
import re
from datetime import timedelta
from typing import Dict, Iterable, List, Sequence, Tuple

from riseup.schemas import ArticleReference, IncidentCandidate, IncidentType, StoredArticle
from riseup.tools.geocoder import KNOWN_LOCATIONS

logger = logging.getLogger(__name__)

DEFAULT_LOCATION = "Tehran"
EXTRACTION_THRESHOLD = 30
LOCATION_BOOST = 20
MAX_PER_ARTICLE = 3
BATCH_SUPPRESSION_WINDOW = timedelta(hours=1)

_SENTENCE_SPLIT = re.compile(r"[.!?؟]")

# type -> [(term, weight)]
INCIDENT_PATTERNS: Dict[IncidentType, List[Tuple[str, int]]] = {
    IncidentType.PROTEST: [
        ("اعتراض", 10), ("تظاهرات", 10), ("تجمع", 8), ("راهپیمایی", 8),
        ("شعار", 6), ("معترض", 7), ("اعتصاب", 9),
        ("protest", 10), ("demonstration", 10), ("rally", 8), ("march", 7),
        ("gathering", 6), ("chant", 5), ("strike", 9),
    ],
    IncidentType.ARREST: [
        ("بازداشت", 10), ("دستگیر", 10), ("توقیف", 9), ("زندان", 7), ("بازداشتی", 9),
        ("arrest", 10), ("detained", 10), ("custody", 9), ("imprisoned", 8), ("jail", 7),
    ],
    IncidentType.INJURY: [
        ("زخمی", 10), ("مجروح", 10), ("آسیب", 7), ("ضرب", 6), ("تیراندازی", 8),
        ("injured", 10), ("wounded", 10), ("hurt", 7), ("shot", 8), ("beaten", 8),
        ("tear gas", 7), ("rubber bullet", 8),
    ],
    IncidentType.DEATH: [
        ("کشته", 10), ("قتل", 10), ("شهید", 9), ("جان باخت", 10), ("کشتار", 10), ("مرگ", 8),
        ("killed", 10), ("death", 9), ("died", 9), ("fatal", 9), ("dead", 8),
        ("casualty", 8), ("martyr", 8),
    ],
}


def score_type(incident_type: IncidentType, text: str, has_location: bool) -> Tuple[int, List[str]]:
    """(confidence 0-100, matched keywords) for one incident type."""
    lowered = text.lower()
    total = 0
    matched = []
    for term, weight in INCIDENT_PATTERNS[incident_type]:
        if term.lower() in lowered:
            total += weight
            matched.append(term)
    score = min(total * 3, 100)
    if has_location:
        score = min(score + LOCATION_BOOST, 100)
    return score, matched


def find_locations(text: str) -> List[str]:
    lowered = text.lower()
    return [name for name in KNOWN_LOCATIONS if name.lower() in lowered]


def extract_title(text: str) -> str:
    first = _SENTENCE_SPLIT.split(text, maxsplit=1)[0].strip()
    if 10 < len(first) <= 150:
        return first
    return text[:97] + "..." if len(text) > 100 else text


def extract_description(text: str) -> str:
    sentences = _SENTENCE_SPLIT.split(text)
    description = ". ".join(sentences[:3]).strip()
    if len(description) > 300:
        return description[:297] + "..."
    return description


class IncidentExtractor:
    """Keyword/rule extractor. Stateless; safe to share."""

    def __init__(self, threshold: int = EXTRACTION_THRESHOLD, max_per_article: int = MAX_PER_ARTICLE):
        self.threshold = threshold
        self.max_per_article = max_per_article

    def extract_from_article(self, article: StoredArticle) -> List[IncidentCandidate]:
        combined = f"{article.title} {article.content or article.summary}"
        body = article.content or article.summary
        provenance = ArticleReference(
            article_id=article.id, title=article.title, source_url=article.source_url
        )
        locations = find_locations(combined)
        title = extract_title(combined)
        description = extract_description(body)

        candidates: List[IncidentCandidate] = []
        for incident_type in INCIDENT_PATTERNS:
            base_score, keywords = score_type(incident_type, combined, has_location=False)
            if base_score < self.threshold or not keywords:
                continue

            if locations:
                boosted, _ = score_type(incident_type, combined, has_location=True)
                for location in locations:
                    candidates.append(IncidentCandidate(
                        type=incident_type,
                        title=title,
                        description=description,
                        location_text=location,
                        timestamp=article.published_at,
                        confidence=boosted,
                        keywords=keywords,
                        provenance=provenance,
                    ))
            else:
                candidates.append(IncidentCandidate(
                    type=incident_type,
                    title=title,
                    description=description,
                    location_text=DEFAULT_LOCATION,
                    timestamp=article.published_at,
                    confidence=max(base_score - LOCATION_BOOST, 10),
                    keywords=keywords,
                    provenance=provenance,
                ))

        candidates.sort(key=lambda c: c.confidence, reverse=True)
        return candidates[: self.max_per_article]

    def extract_from_articles(self, articles: Iterable[StoredArticle]) -> List[IncidentCandidate]:
        """All candidates for a batch, minus repeats of (location, type) within an hour."""
        extracted: List[IncidentCandidate] = []
        for article in articles:
            extracted.extend(self.extract_from_article(article))
        unique = suppress_batch_repeats(extracted)
        logger.info(f"[EXTRACT] {len(extracted)} candidates, {len(unique)} after batch suppression")
        return unique


def suppress_batch_repeats(candidates: Sequence[IncidentCandidate]) -> List[IncidentCandidate]:
    kept: List[IncidentCandidate] = []
    for candidate in candidates:
        repeat = any(
            k.location_text == candidate.location_text
            and k.type == candidate.type
            and abs(k.timestamp - candidate.timestamp) < BATCH_SUPPRESSION_WINDOW
            for k in kept
        )
        if not repeat:
            kept.append(candidate)
    return kept
