"""Registry для оценщиков по типу выборки."""

from collections.abc import Callable
from typing import Type

from aidetect.scoring.base import Estimator, Sample

EstimatorFactory = Callable[[], Estimator]

_ESTIMATORS: dict[Type[Sample], EstimatorFactory] = {}


def register_estimator(sample_type: Type[Sample]):
    """
    Декоратор для регистрации оценщика для вида выборки.

    Args:
        sample_type: Класс выборки, который обрабатывает оценщик

    Example:
        @register_estimator(AudioSample)
        class AudioEstimator(Estimator[AudioSample]):
            def estimate(self, sample):
                return 0.0
    """

    def decorator(factory: EstimatorFactory) -> EstimatorFactory:
        _ESTIMATORS[sample_type] = factory
        return factory

    return decorator


def get_estimator_factory(sample_type: Type[Sample]) -> EstimatorFactory | None:
    return _ESTIMATORS.get(sample_type)


def list_estimators() -> dict[Type[Sample], EstimatorFactory]:
    return _ESTIMATORS.copy()
