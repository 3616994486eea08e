"""Formula detection and recognition pipeline."""

from .formula_pipeline import FormulaPipeline

__all__ = ["FormulaPipeline"]
