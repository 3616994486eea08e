"""Entities and error kinds shared across the pipeline."""

from .block_types import FormulaType, RegionOrder, ScoreActivation, SelectionPolicy
from .detections import (
    Detection,
    FormulaRegion,
    RawDetection,
    RecognitionResult,
    TokenSequence,
)
from .errors import (
    FormatError,
    FormulaOCRError,
    InferenceError,
    InferenceTimeoutError,
    ModelLoadError,
    PreprocessingError,
    VocabularyError,
)

__all__ = [
    "Detection",
    "FormulaRegion",
    "FormulaType",
    "RawDetection",
    "RecognitionResult",
    "RegionOrder",
    "ScoreActivation",
    "SelectionPolicy",
    "TokenSequence",
    "FormatError",
    "FormulaOCRError",
    "InferenceError",
    "InferenceTimeoutError",
    "ModelLoadError",
    "PreprocessingError",
    "VocabularyError",
]
