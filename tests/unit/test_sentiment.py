from whatsconnect.domain.enums import SentimentLabel
from whatsconnect.domain.sentiment import classify


def test_negative_keywords_win() -> None:
    result = classify("I have a problem with my order")
    assert result.label == SentimentLabel.NEGATIVE
    assert result.score == 0.7


def test_positive_keywords_win() -> None:
    result = classify("Thanks, this is GREAT")
    assert result.label == SentimentLabel.POSITIVE
    assert result.score == 0.7


def test_tie_is_neutral() -> None:
    result = classify("good but broken")
    assert result.label == SentimentLabel.NEUTRAL
    assert result.score == 0.5


def test_empty_and_missing_text_are_neutral() -> None:
    assert classify("").label == SentimentLabel.NEUTRAL
    assert classify(None).label == SentimentLabel.NEUTRAL


def test_repeated_keyword_counts_once() -> None:
    result = classify("bad bad bad but thanks and great")
    assert result.label == SentimentLabel.POSITIVE


def test_keywords_match_inside_words() -> None:
    # "goodbye" contains "good"
    assert classify("goodbye").label == SentimentLabel.POSITIVE
