"""Перевод координат из пространства выборки в пространство экрана."""

from dataclasses import dataclass

from aidetect.messages import Region


@dataclass(frozen=True)
class CoordinateMapping:
    """
    Масштаб по осям: размер экрана / размер выборки.

    Пересчитывается заново при любом изменении размеров.
    """

    scale_x: float
    scale_y: float

    @classmethod
    def between(
        cls,
        sampling_width: float,
        sampling_height: float,
        display_width: float,
        display_height: float,
    ) -> "CoordinateMapping":
        if sampling_width <= 0 or sampling_height <= 0:
            raise ValueError("sampling size must be positive")
        return cls(display_width / sampling_width, display_height / sampling_height)

    def project(self, region: Region) -> Region:
        return region.scaled(self.scale_x, self.scale_y)

    def unproject(self, region: Region) -> Region:
        return region.scaled(1 / self.scale_x, 1 / self.scale_y)
