import math

import numpy as np

from aidetect.errors import MalformedSampleError
from aidetect.scoring.base import AudioSample, Estimator
from aidetect.scoring.registry import register_estimator


def magnitude_spectrum(samples: np.ndarray, fft_size: int) -> tuple[float, ...]:
    """Hann-windowed magnitude spectrum of the last ``fft_size`` samples."""
    mono = samples.astype(np.float64)
    if mono.ndim == 2:
        mono = mono.mean(axis=0)
    mono = mono[-fft_size:]
    if mono.size < fft_size:
        mono = np.pad(mono, (fft_size - mono.size, 0))
    spectrum = np.abs(np.fft.rfft(mono * np.hanning(fft_size)))[: fft_size // 2]
    return tuple(float(v) for v in spectrum)


@register_estimator(AudioSample)
class AudioEstimator(Estimator[AudioSample]):
    """
    Reserved slot for a spectral heuristic.

    No combination rule is defined yet, so every valid spectrum scores 0.0
    and is labelled Low.
    """

    def estimate(self, sample: AudioSample) -> float:
        if not sample.spectrum:
            raise MalformedSampleError("empty spectrum")
        if not all(math.isfinite(v) for v in sample.spectrum):
            raise MalformedSampleError("spectrum contains non-finite values")
        return 0.0
