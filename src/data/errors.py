"""Error kinds raised by the formula detection and recognition pipeline."""


class FormulaOCRError(Exception):
    """Base class for all pipeline errors."""
    pass


class PreprocessingError(FormulaOCRError):
    """Raised when an image cannot be rasterized, resampled or cropped."""
    pass


class ModelLoadError(FormulaOCRError):
    """Raised when an inference model cannot be found or loaded."""
    pass


class InferenceError(FormulaOCRError):
    """Raised when the inference engine fails to execute a model."""
    pass


class InferenceTimeoutError(InferenceError):
    """Raised when an inference call does not return within its time limit."""
    pass


class VocabularyError(FormulaOCRError):
    """Raised when the token table is missing or malformed."""
    pass


class FormatError(FormulaOCRError):
    """Raised when a tensor payload does not have the expected shape."""
    pass
