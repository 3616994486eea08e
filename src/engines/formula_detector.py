"""
Formula region detection.

Encodes the full page for the detector, runs it, postprocesses the rows
and maps the surviving boxes into source-image pixels.
"""

from typing import List, Tuple

from data.detections import FormulaRegion
from data.errors import FormatError
from engines.onnx_engine import InferenceEngine
from postproc.detection import DetectionPostprocessor
from preproc.image_buffer import RasterImage
from preproc.tensor_codec import IMAGENET, decode, encode
from util.coords import to_image_space
from util.logging import get_logger
from util.timing import timeit

logger = get_logger(__name__)


class FormulaDetector:
    """Detector stage of the pipeline."""

    def __init__(
        self,
        engine: InferenceEngine,
        postprocessor: DetectionPostprocessor,
        input_size: Tuple[int, int] = (768, 768),
        input_name: str = 'images',
        output_name: str = 'output0',
    ):
        """
        Initialize detector.

        Args:
            engine: Inference engine holding the detector model
            postprocessor: Row decoding, filtering and suppression
            input_size: Model input (width, height)
            input_name: Name of the image input tensor
            output_name: Name of the detection output tensor
        """
        self.engine = engine
        self.postprocessor = postprocessor
        self.input_size = input_size
        self.input_name = input_name
        self.output_name = output_name

    @timeit(name="Formula detection")
    def detect(self, image: RasterImage, padding: float = 0.0) -> List[FormulaRegion]:
        """
        Find formula regions in an image.

        Args:
            image: Source image
            padding: Extra margin around each region, in source pixels

        Returns:
            Regions in source-image pixels, in ranked order. Detections whose
            mapped rectangle is empty are dropped.

        Raises:
            PreprocessingError, InferenceError, FormatError
        """
        width, height = self.input_size
        tensor = encode(image, width, height, IMAGENET)

        outputs = self.engine.run({self.input_name: tensor}, {self.output_name})
        if self.output_name not in outputs:
            raise FormatError(f"Detector returned no '{self.output_name}' output")

        detections = self.postprocessor(decode(outputs[self.output_name]))

        regions = []
        for detection in detections:
            region = to_image_space(detection, self.input_size, image.size, padding)
            if region is None:
                logger.debug(f"Dropping detection outside the image: {detection}")
                continue
            regions.append(region)

        logger.info(f"Detected {len(regions)} formula regions", extra={'stage': 'detection'})
        return regions

    def __repr__(self) -> str:
        return f"FormulaDetector(input_size={self.input_size}, postprocessor={self.postprocessor})"
