"""Циклы сэмплирования: структура документа и кадры захвата."""

from aidetect.sampling.document import (
    DocumentElement,
    DocumentSnapshot,
    DocumentSource,
    StaticDocumentSource,
)
from aidetect.sampling.frames import FrameSampler
from aidetect.sampling.scanner import StructuralScanner

__all__ = [
    "DocumentElement",
    "DocumentSnapshot",
    "DocumentSource",
    "FrameSampler",
    "StaticDocumentSource",
    "StructuralScanner",
]
