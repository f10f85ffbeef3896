"""Эвристические оценщики: текст, изображения, аудио."""

from aidetect.scoring.base import (
    DEFAULT_SCORE,
    AudioSample,
    Estimator,
    ImageSample,
    Label,
    Sample,
    Score,
    TextSample,
)
from aidetect.scoring.audio import AudioEstimator
from aidetect.scoring.image import ImageEstimator
from aidetect.scoring.registry import get_estimator_factory, list_estimators, register_estimator
from aidetect.scoring.scorer import HeuristicScorer
from aidetect.scoring.text import (
    CoarseTextEstimator,
    StructuralTextEstimator,
    TextFeatures,
    TextVariant,
)

__all__ = [
    "DEFAULT_SCORE",
    "AudioEstimator",
    "AudioSample",
    "CoarseTextEstimator",
    "Estimator",
    "HeuristicScorer",
    "ImageEstimator",
    "ImageSample",
    "Label",
    "Sample",
    "Score",
    "StructuralTextEstimator",
    "TextFeatures",
    "TextSample",
    "TextVariant",
    "get_estimator_factory",
    "list_estimators",
    "register_estimator",
]
