from datetime import timedelta

from riseup.incidents.extractor import (
    DEFAULT_LOCATION,
    IncidentExtractor,
    extract_description,
    extract_title,
    find_locations,
    score_type,
)
from riseup.schemas import IncidentType
from tests.conftest import make_article


def test_score_is_triple_weight_sum_plus_location_boost():
    text = "a protest and a demonstration"
    assert score_type(IncidentType.PROTEST, text, has_location=False) == (60, ["protest", "demonstration"])
    assert score_type(IncidentType.PROTEST, text, has_location=True)[0] == 80


def test_score_is_capped_at_100():
    text = "protest demonstration rally march gathering strike"
    assert score_type(IncidentType.PROTEST, text, has_location=True)[0] == 100


def test_farsi_keywords_score():
    score, keywords = score_type(IncidentType.ARREST, "بازداشت گسترده معترضان", has_location=False)
    assert score == 30
    assert keywords == ["بازداشت"]


def test_find_locations_english_and_farsi():
    assert find_locations("Clashes in Shiraz and تبریز overnight") == ["تبریز", "Shiraz"]


def test_one_candidate_per_type_and_location():
    article = make_article(
        "Protesters held a demonstration in Shiraz. Security forces detained dozens.",
        title="Unrest",
    )
    candidates = IncidentExtractor().extract_from_article(article)

    assert [(c.type, c.location_text, c.confidence) for c in candidates] == [
        ("protest", "Shiraz", 80),
        ("arrest", "Shiraz", 50),
    ]
    assert candidates[0].provenance.article_id == article.id
    assert candidates[0].timestamp == article.published_at


def test_no_location_falls_back_to_default_city_with_lower_confidence():
    article = make_article("A large protest and a strike were reported overnight.", title="Night")
    candidates = IncidentExtractor().extract_from_article(article)

    assert len(candidates) == 1
    assert candidates[0].location_text == DEFAULT_LOCATION
    assert candidates[0].confidence == 57 - 20


def test_below_threshold_yields_nothing():
    article = make_article("Officials held a meeting about the budget.", title="Budget")
    assert IncidentExtractor().extract_from_article(article) == []


def test_at_most_three_candidates_per_article():
    article = make_article(
        "Protesters in Shiraz and Tabriz were detained, several were injured and two were killed.",
        title="Crackdown",
    )
    candidates = IncidentExtractor().extract_from_article(article)
    assert len(candidates) == 3
    confidences = [c.confidence for c in candidates]
    assert confidences == sorted(confidences, reverse=True)


def test_batch_suppresses_same_location_and_type_within_an_hour():
    text = "Protesters held a demonstration in Shiraz tonight."
    first = make_article(text, title="First report")
    second = make_article(text, title="Second report")
    later = make_article(text, title="Later report").model_copy(
        update={"published_at": first.published_at + timedelta(hours=3)}
    )

    candidates = IncidentExtractor().extract_from_articles([first, second, later])

    assert [c.provenance.title for c in candidates] == ["First report", "Later report"]


def test_title_and_description_shaping():
    assert extract_title("Short. Rest of the text") == "Short. Rest of the text"
    assert extract_title("A reasonably long first sentence. Second.") == "A reasonably long first sentence"
    long_sentence = "x" * 200
    assert extract_title(long_sentence) == "x" * 97 + "..."

    assert extract_description("One. Two. Three. Four.") == "One.  Two.  Three"
    assert len(extract_description("y" * 400)) == 300
