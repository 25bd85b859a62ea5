from dataclasses import dataclass

from whatsconnect.domain.enums import SentimentLabel

POSITIVE_KEYWORDS: tuple[str, ...] = (
    "thank",
    "thanks",
    "great",
    "good",
    "excellent",
    "happy",
    "satisfied",
    "love",
    "perfect",
    "awesome",
    "amazing",
    "wonderful",
    "pleased",
)
NEGATIVE_KEYWORDS: tuple[str, ...] = (
    "bad",
    "terrible",
    "worst",
    "angry",
    "frustrated",
    "disappointed",
    "hate",
    "problem",
    "issue",
    "error",
    "wrong",
    "broken",
    "refund",
    "cancel",
    "complaint",
)

POLAR_SCORE = 0.7
NEUTRAL_SCORE = 0.5


@dataclass(frozen=True, slots=True)
class SentimentResult:
    label: SentimentLabel
    score: float


NEUTRAL = SentimentResult(label=SentimentLabel.NEUTRAL, score=NEUTRAL_SCORE)


def _count_hits(text: str, keywords: tuple[str, ...]) -> int:
    return sum(1 for keyword in keywords if keyword in text)


def classify(text: str | None) -> SentimentResult:
    """Keyword-count sentiment; each keyword counts once however often it appears."""
    lowered = (text or "").lower()
    positive = _count_hits(lowered, POSITIVE_KEYWORDS)
    negative = _count_hits(lowered, NEGATIVE_KEYWORDS)

    if negative > positive:
        return SentimentResult(label=SentimentLabel.NEGATIVE, score=POLAR_SCORE)
    if positive > negative:
        return SentimentResult(label=SentimentLabel.POSITIVE, score=POLAR_SCORE)
    return NEUTRAL
