"""Detector output postprocessing and LaTeX rendering."""

from .detection import DetectionPostprocessor, decode, filter_detections, select, suppress
from .latex_norm import tidy_latex
from .vocabulary import Vocabulary, get_vocabulary, load_vocabulary, render

__all__ = [
    "DetectionPostprocessor",
    "decode",
    "filter_detections",
    "select",
    "suppress",
    "tidy_latex",
    "Vocabulary",
    "get_vocabulary",
    "load_vocabulary",
    "render",
]
