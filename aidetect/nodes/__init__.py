from aidetect.nodes.capture import CaptureNode
from aidetect.nodes.controller import ControllerNode
from aidetect.nodes.overlay import OverlayNode

__all__ = ["CaptureNode", "ControllerNode", "OverlayNode"]
