"""
Inference engines and the model-facing pipeline stages.
"""

from .onnx_engine import InferenceEngine, OnnxInferenceEngine, TimeoutEngine
from .formula_detector import FormulaDetector
from .formula_recognizer import AutoregressiveDecoder, FormulaRecognizer, next_token

__all__ = [
    "InferenceEngine",
    "OnnxInferenceEngine",
    "TimeoutEngine",
    "FormulaDetector",
    "AutoregressiveDecoder",
    "FormulaRecognizer",
    "next_token",
]
