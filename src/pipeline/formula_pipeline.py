"""
Formula pipeline: detection, region extraction and per-region recognition.

Workflow:
1. Formula detection - encode the page, run the detector, suppress
   overlapping boxes and map them to image pixels
2. Formula recognition - crop every region and decode it to LaTeX
3. Assembly - one RecognitionResult per recognized region, in region order

Detection errors abort the run. A region that fails recognition is logged
and skipped without affecting the others.
"""

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional, Union

import numpy as np
from PIL import Image

from data.block_types import RegionOrder
from data.detections import FormulaRegion, RecognitionResult
from data.errors import FormatError, InferenceError, PreprocessingError
from engines.formula_detector import FormulaDetector
from engines.formula_recognizer import AutoregressiveDecoder, FormulaRecognizer
from engines.onnx_engine import InferenceEngine, OnnxInferenceEngine, TimeoutEngine
from postproc.detection import DetectionPostprocessor
from postproc.vocabulary import get_vocabulary
from preproc.image_buffer import RasterImage
from util.config import AppSettings, EngineSettings, load_settings
from util.coords import sort_reading_order
from util.device import get_providers
from util.logging import get_logger
from util.timing import Timer, timed_operation

logger = get_logger(__name__)

ImageInput = Union[RasterImage, Image.Image, np.ndarray]

# Errors that cost one region, not the whole run
REGION_ERRORS = (PreprocessingError, InferenceError, FormatError)


def _as_raster(image: ImageInput) -> RasterImage:
    if isinstance(image, RasterImage):
        return image
    if isinstance(image, Image.Image):
        return RasterImage.from_pil(image)
    if isinstance(image, np.ndarray):
        return RasterImage.from_array(image)
    raise TypeError(f"Unsupported image type: {type(image).__name__}")


class FormulaPipeline:
    """Complete formula detection and recognition pipeline."""

    def __init__(
        self,
        detector: FormulaDetector,
        recognizer: FormulaRecognizer,
        max_workers: int = 1,
        region_order: RegionOrder = RegionOrder.CONFIDENCE,
        crop_padding: float = 0.0,
        reading_line_tolerance: float = 10.0,
    ):
        """
        Initialize pipeline.

        Args:
            detector: Formula detector stage
            recognizer: Formula recognizer stage
            max_workers: Regions recognized concurrently (1 = sequential)
            region_order: Order of the returned results
            crop_padding: Margin added around each region, in source pixels
            reading_line_tolerance: Same-line tolerance for reading order
        """
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")

        self.detector = detector
        self.recognizer = recognizer
        self.max_workers = max_workers
        self.region_order = RegionOrder(region_order)
        self.crop_padding = crop_padding
        self.reading_line_tolerance = reading_line_tolerance
        self._owned_engines: List[InferenceEngine] = []

    @classmethod
    def from_settings(cls, settings: AppSettings) -> 'FormulaPipeline':
        """
        Build the pipeline with ONNX Runtime engines.

        Raises:
            ModelLoadError: If a model cannot be loaded
            VocabularyError: If the token table is missing or malformed
        """
        logger.info("Initializing formula pipeline...")
        workers = settings.pipeline.max_workers

        det = settings.detector
        rec = settings.recognizer
        voc = settings.vocabulary

        vocabulary = get_vocabulary(
            voc.path,
            pad_id=voc.pad_id,
            bos_id=voc.bos_id,
            eos_id=voc.eos_id,
            space_marker=voc.space_marker,
        )

        detector_engine = _build_engine(det.model_path, settings.engine)
        encoder_engine = _build_engine(rec.encoder_path, settings.engine)
        decoder_engine = _build_engine(rec.decoder_path, settings.engine)

        detector = FormulaDetector(
            engine=detector_engine,
            postprocessor=DetectionPostprocessor(
                confidence_threshold=det.confidence_threshold,
                iou_threshold=det.iou_threshold,
                record_width=det.record_width,
                score_activation=det.score_activation,
                selection=det.selection,
                selection_rank=det.selection_rank,
            ),
            input_size=(det.input_width, det.input_height),
            input_name=det.input_name,
            output_name=det.output_name,
        )

        decoder = AutoregressiveDecoder(
            engine=decoder_engine,
            bos_id=voc.bos_id,
            eos_id=voc.eos_id,
            max_length=rec.max_length,
            input_ids_name=rec.decoder_input_ids_name,
            hidden_states_name=rec.decoder_hidden_states_name,
            logits_name=rec.decoder_output_name,
            vocab_size=rec.vocab_size,
        )

        recognizer = FormulaRecognizer(
            encoder=encoder_engine,
            decoder=decoder,
            vocabulary=vocabulary,
            input_size=(rec.input_width, rec.input_height),
            encoder_input_name=rec.encoder_input_name,
            encoder_output_name=rec.encoder_output_name,
            tidy_whitespace=rec.tidy_whitespace,
        )

        pipeline = cls(
            detector=detector,
            recognizer=recognizer,
            max_workers=workers,
            region_order=settings.pipeline.region_order,
            crop_padding=settings.pipeline.crop_padding,
            reading_line_tolerance=settings.pipeline.reading_line_tolerance,
        )
        pipeline._owned_engines = [detector_engine, encoder_engine, decoder_engine]

        logger.info("Pipeline ready")
        return pipeline

    @classmethod
    def from_config(cls, config_path: Optional[Path] = None) -> 'FormulaPipeline':
        """Build the pipeline from a YAML configuration file."""
        return cls.from_settings(load_settings(config_path))

    def run(self, image: ImageInput) -> List[RecognitionResult]:
        """
        Detect and recognize every formula in an image.

        Args:
            image: Source image

        Returns:
            One RecognitionResult per recognized region. An empty list means
            no region was detected or none could be recognized.

        Raises:
            PreprocessingError, InferenceError, FormatError: If detection fails
        """
        raster = _as_raster(image)

        with timed_operation("Formula pipeline", logger.info):
            regions = self.detector.detect(raster, padding=self.crop_padding)

            if not regions:
                logger.info("No math formulas detected in image")
                return []

            if self.region_order == RegionOrder.READING:
                regions = sort_reading_order(regions, self.reading_line_tolerance)

            if self.max_workers == 1 or len(regions) == 1:
                outcomes = [
                    self._process_region(raster, region, idx)
                    for idx, region in enumerate(regions)
                ]
            else:
                outcomes = self._process_parallel(raster, regions)

            results = [outcome for outcome in outcomes if outcome is not None]

        logger.info(f"Recognized {len(results)}/{len(regions)} formula regions")
        return results

    def _process_parallel(
        self,
        raster: RasterImage,
        regions: List[FormulaRegion],
    ) -> List[Optional[RecognitionResult]]:
        """Recognize regions on a bounded worker pool, keeping region order."""
        workers = min(self.max_workers, len(regions))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='region') as executor:
            futures = [
                executor.submit(self._process_region, raster, region, idx)
                for idx, region in enumerate(regions)
            ]
            return [future.result() for future in futures]

    def _process_region(
        self,
        raster: RasterImage,
        region: FormulaRegion,
        index: int,
    ) -> Optional[RecognitionResult]:
        """Crop and recognize one region; None when recognition fails."""
        timer = Timer().start()
        try:
            crop = raster.crop(region)
            latex, tokens = self.recognizer.recognize(crop)
        except REGION_ERRORS as e:
            logger.warning(
                f"Skipping region {index} ({region.label}): {e}",
                extra={'stage': 'recognition', 'region': index},
            )
            return None

        timer.stop()
        logger.debug(
            f"Region {index}: {latex}",
            extra={'stage': 'recognition', 'region': index, 'elapsed_ms': timer.elapsed_ms},
        )
        return RecognitionResult(
            region=region,
            latex=latex,
            token_count=len(tokens),
            truncated=tokens.truncated,
            elapsed_ms=timer.elapsed_ms,
        )

    def close(self):
        """Release engines created by from_settings."""
        for engine in self._owned_engines:
            engine.close()
        self._owned_engines = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __repr__(self):
        return (
            f"FormulaPipeline(\n"
            f"  detector={self.detector},\n"
            f"  recognizer={self.recognizer},\n"
            f"  max_workers={self.max_workers}\n"
            f")"
        )


def _build_engine(model_path: Path, settings: EngineSettings) -> InferenceEngine:
    engine = OnnxInferenceEngine.load_model(
        Path(model_path).expanduser(),
        providers=get_providers(settings.use_gpu, settings.use_tensorrt, settings.use_coreml),
        num_threads=settings.num_threads,
    )
    if settings.timeout_seconds is None:
        return engine
    return TimeoutEngine(engine, settings.timeout_seconds)
