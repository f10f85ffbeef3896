"""Sample a live surface, score it heuristically, annotate it back."""

import logging

from .bus import EventBus

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = ["EventBus", "__version__"]
