"""Text heuristics.

Two variants live here and are kept apart:

* ``StructuralTextEstimator`` scores large text containers found by the
  structural scan. It builds six features, ramps each one into [0, 1] and
  takes a fixed weighted sum.
* ``CoarseTextEstimator`` is the older rule-of-thumb used when walking raw
  text nodes. It adds fixed bonuses and uses a stricter threshold.
"""

import math
import re
from collections import Counter
from dataclasses import dataclass
from enum import Enum

from aidetect.config import config
from aidetect.scoring.base import Estimator, TextSample, clamp01
from aidetect.scoring.registry import register_estimator

WORD_RE = re.compile(r"[a-z'][a-z']*")
SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
PUNCT_RE = re.compile(r"[,:;()]")
STOP_WORDS = frozenset(
    "the of and to in that is with as for on it this by from".split()
)
NGRAM = 3

ENTROPY_TARGET = 3.9

# (weight, start, end) for each feature ramp; weights sum to 1.0
WEIGHTS = {
    "avg_sentence": (0.25, 18.0, 30.0),
    "type_token": (0.25, 0.45, 0.20),
    "stop_words": (0.15, 0.12, 0.20),
    "punctuation": (0.10, 0.10, 0.00),
    "repetition": (0.15, 0.07, 0.15),
    "entropy_distance": (0.10, 0.65, 0.00),
}

TRANSITIONS_RE = re.compile(r"\bmoreover\b|\bfurthermore\b|\bin conclusion\b", re.I)
PUNCT_RUN_RE = re.compile(r"[;:—]{2,}")
WS_RE = re.compile(r"\s+")


class TextVariant(str, Enum):
    STRUCTURAL = "structural"
    COARSE = "coarse"


def normalize_whitespace(text: str) -> str:
    return WS_RE.sub(" ", text).strip()


def tokenize(text: str) -> list[str]:
    return WORD_RE.findall(text.lower())


def split_sentences(text: str) -> list[str]:
    return [s for s in SENTENCE_SPLIT_RE.split(text) if s.strip()]


def type_token_ratio(words: list[str]) -> float:
    if not words:
        return 0.0
    return len(set(words)) / len(words)


def repetition_ratio(words: list[str], n: int = NGRAM) -> float:
    """Share of n-gram occurrences that belong to an n-gram seen more than once."""
    grams = Counter(tuple(words[i : i + n]) for i in range(len(words) - n + 1))
    total = sum(grams.values())
    if not total:
        return 0.0
    return sum(c for c in grams.values() if c > 1) / total


def char_entropy(text: str) -> float:
    if not text:
        return 0.0
    n = len(text)
    return -sum((c / n) * math.log2(c / n) for c in Counter(text).values())


def ramp(value: float, start: float, end: float) -> float:
    """0 at ``start``, 1 at ``end``, linear and clamped in between."""
    return clamp01((value - start) / (end - start))


@dataclass(frozen=True)
class TextFeatures:
    avg_sentence: float
    type_token: float
    punctuation: float
    stop_words: float
    repetition: float
    entropy: float

    @classmethod
    def extract(cls, text: str) -> "TextFeatures":
        words = tokenize(text)
        n_words = len(words) or 1
        sentences = split_sentences(text)
        return cls(
            avg_sentence=len(words) / (len(sentences) or 1),
            type_token=type_token_ratio(words),
            punctuation=len(PUNCT_RE.findall(text)) / n_words,
            stop_words=sum(1 for w in words if w in STOP_WORDS) / n_words,
            repetition=repetition_ratio(words),
            entropy=char_entropy(text),
        )

    def weighted_sum(self) -> float:
        values = {
            "avg_sentence": self.avg_sentence,
            "type_token": self.type_token,
            "stop_words": self.stop_words,
            "punctuation": self.punctuation,
            "repetition": self.repetition,
            "entropy_distance": abs(self.entropy - ENTROPY_TARGET),
        }
        return sum(
            weight * ramp(values[name], start, end)
            for name, (weight, start, end) in WEIGHTS.items()
        )


@register_estimator(TextSample)
class StructuralTextEstimator(Estimator[TextSample]):
    def __init__(
        self,
        min_chars: int | None = None,
        threshold: float | None = None,
    ) -> None:
        cfg = config.scoring
        self.min_chars = min_chars if min_chars is not None else cfg.structural_min_chars
        self.threshold = threshold if threshold is not None else cfg.structural_flag_threshold

    def eligible(self, sample: TextSample) -> bool:
        return len(normalize_whitespace(sample.content)) >= self.min_chars

    def estimate(self, sample: TextSample) -> float:
        return TextFeatures.extract(normalize_whitespace(sample.content)).weighted_sum()


class CoarseTextEstimator(Estimator[TextSample]):
    def __init__(
        self,
        min_chars: int | None = None,
        threshold: float | None = None,
    ) -> None:
        cfg = config.scoring
        self.min_chars = min_chars if min_chars is not None else cfg.coarse_min_chars
        self.threshold = threshold if threshold is not None else cfg.coarse_flag_threshold

    def eligible(self, sample: TextSample) -> bool:
        return len(normalize_whitespace(sample.content)) >= self.min_chars

    def estimate(self, sample: TextSample) -> float:
        text = normalize_whitespace(sample.content)
        words = text.split(" ")
        sentences = len(re.split(r"[.!?]\s", text))
        ttr = len({w.lower() for w in words}) / len(words)
        avg_chars = len(text) / max(1, sentences)

        score = 0.0
        if ttr < 0.45:
            score += 0.4
        if avg_chars > 160:
            score += 0.3
        if PUNCT_RUN_RE.search(text):
            score += 0.2
        if TRANSITIONS_RE.search(text):
            score += 0.2
        return min(1.0, score)


def text_estimator(variant: TextVariant) -> Estimator[TextSample]:
    if variant is TextVariant.COARSE:
        return CoarseTextEstimator()
    return StructuralTextEstimator()
