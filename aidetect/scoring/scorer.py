import logging
from collections.abc import Mapping
from typing import Type

from aidetect.errors import MalformedSampleError
from aidetect.scoring.base import DEFAULT_SCORE, Estimator, Sample, Score, TextSample
from aidetect.scoring.registry import list_estimators
from aidetect.scoring.text import TextVariant, text_estimator

logger = logging.getLogger(__name__)


class HeuristicScorer:
    """
    Single entry point for every sample kind.

    ``score`` never raises for bad input: a malformed sample gets the
    default Low score so one broken frame cannot stall a sampling loop.
    Text below the variant's minimum length is skipped and yields ``None``.
    """

    def __init__(
        self,
        text_variant: TextVariant = TextVariant.STRUCTURAL,
        estimators: Mapping[Type[Sample], Estimator] | None = None,
    ) -> None:
        self._estimators: dict[Type[Sample], Estimator] = {
            sample_type: factory() for sample_type, factory in list_estimators().items()
        }
        self._estimators[TextSample] = text_estimator(text_variant)
        if estimators:
            self._estimators.update(estimators)

    def estimator_for(self, sample: Sample) -> Estimator:
        try:
            return self._estimators[type(sample)]
        except KeyError:
            raise TypeError(f"no estimator for {type(sample).__name__}") from None

    def eligible(self, sample: Sample) -> bool:
        return self.estimator_for(sample).eligible(sample)

    def score(self, sample: Sample) -> Score | None:
        estimator = self.estimator_for(sample)
        if not estimator.eligible(sample):
            return None
        try:
            return estimator.score(sample)
        except MalformedSampleError as exc:
            logger.debug("Malformed %s: %s", type(sample).__name__, exc.message)
            return DEFAULT_SCORE
