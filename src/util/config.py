"""
Configuration loading and validation.

Configuration lives in YAML (``configs/app.yaml`` by default) and is
validated into typed settings objects before any component is built.
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from data.block_types import RegionOrder, ScoreActivation, SelectionPolicy
from util.logging import get_logger

logger = get_logger(__name__)

ENV_PATTERN = re.compile(r'\$\{([^}]+)\}')


class _Section(BaseModel):
    model_config = ConfigDict(extra='forbid', protected_namespaces=())


class DetectorSettings(_Section):
    """Formula detector model and postprocessing."""

    model_path: Path = Path('models/mfd.onnx')
    input_name: str = 'images'
    output_name: str = 'output0'
    input_width: int = Field(768, gt=0)
    input_height: int = Field(768, gt=0)
    record_width: int = Field(6, ge=6)
    # Scale depends on the export: probabilities use ~0.5, raw logits need
    # score_activation=sigmoid or a logit-scale threshold.
    confidence_threshold: float = 0.5
    iou_threshold: float = Field(0.45, ge=0.0, le=1.0)
    score_activation: ScoreActivation = ScoreActivation.IDENTITY
    selection: SelectionPolicy = SelectionPolicy.ALL
    selection_rank: int = Field(0, ge=0)


class RecognizerSettings(_Section):
    """Formula recognizer encoder/decoder models and decode loop."""

    encoder_path: Path = Path('models/mfr_encoder.onnx')
    decoder_path: Path = Path('models/mfr_decoder.onnx')
    encoder_input_name: str = 'pixel_values'
    encoder_output_name: str = 'last_hidden_state'
    decoder_input_ids_name: str = 'input_ids'
    decoder_hidden_states_name: str = 'encoder_hidden_states'
    decoder_output_name: str = 'logits'
    input_width: int = Field(384, gt=0)
    input_height: int = Field(384, gt=0)
    max_length: int = Field(512, ge=2)
    vocab_size: Optional[int] = Field(None, gt=0)
    tidy_whitespace: bool = False


class VocabularySettings(_Section):
    """Token table location and reserved ids."""

    path: Path = Path('models/tokenizer.json')
    pad_id: int = 0
    bos_id: int = 1
    eos_id: int = 2
    space_marker: str = 'Ġ'

    @model_validator(mode='after')
    def _distinct_control_ids(self) -> 'VocabularySettings':
        if len({self.pad_id, self.bos_id, self.eos_id}) != 3:
            raise ValueError("pad_id, bos_id and eos_id must be distinct")
        return self


class EngineSettings(_Section):
    """Inference engine options."""

    use_gpu: bool = False
    use_tensorrt: bool = False
    use_coreml: bool = False
    num_threads: int = 2
    timeout_seconds: Optional[float] = Field(30.0, gt=0)


class PipelineSettings(_Section):
    """Region processing options."""

    max_workers: int = Field(1, ge=1)
    region_order: RegionOrder = RegionOrder.CONFIDENCE
    crop_padding: float = Field(0.0, ge=0.0)
    reading_line_tolerance: float = Field(10.0, gt=0.0)


class LoggingSettings(_Section):
    """Logging options."""

    level: str = 'INFO'
    format: str = 'text'
    log_dir: Optional[Path] = None

    @field_validator('level')
    @classmethod
    def _known_level(cls, value: str) -> str:
        value = value.upper()
        if value not in {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}:
            raise ValueError(f"Unknown log level: {value}")
        return value

    @field_validator('format')
    @classmethod
    def _known_format(cls, value: str) -> str:
        if value not in {'text', 'json'}:
            raise ValueError(f"Log format must be 'text' or 'json', got {value}")
        return value


class AppSettings(_Section):
    """Complete application settings."""

    detector: DetectorSettings = Field(default_factory=DetectorSettings)
    recognizer: RecognizerSettings = Field(default_factory=RecognizerSettings)
    vocabulary: VocabularySettings = Field(default_factory=VocabularySettings)
    engine: EngineSettings = Field(default_factory=EngineSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# Searched in order when no path is given
DEFAULT_CONFIG_PATHS = (
    Path("configs") / "app.yaml",
    Path(__file__).resolve().parents[2] / "configs" / "app.yaml",
)


def _find_config(config_path: Optional[Path]) -> Optional[Path]:
    if config_path is not None:
        config_path = Path(config_path)
        return config_path if config_path.is_file() else None
    return next((path for path in DEFAULT_CONFIG_PATHS if path.is_file()), None)


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Read the YAML configuration as a plain dictionary.

    A missing or unreadable file is not fatal: the built-in defaults are
    returned and the problem is logged. ``${VAR}`` references in string
    values are expanded from the environment.

    Args:
        config_path: YAML file (default: first of DEFAULT_CONFIG_PATHS)
    """
    path = _find_config(config_path)
    if path is None:
        logger.warning(f"No configuration at {config_path or 'default locations'}, using defaults")
        return get_default_config()

    try:
        with open(path, 'r', encoding='utf-8') as f:
            raw = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Cannot read configuration {path}: {e}")
        return get_default_config()

    logger.info(f"Loaded configuration from {path}")
    return expand_env_vars(raw or {})


def expand_env_vars(value: Any) -> Any:
    """
    Substitute ``${VAR}`` references in nested dicts, lists and strings.

    Unset variables are left as written.
    """
    if isinstance(value, str):
        return ENV_PATTERN.sub(lambda m: os.environ.get(m.group(1), m.group(0)), value)
    if isinstance(value, dict):
        return {key: expand_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env_vars(item) for item in value]
    return value


def get_default_config() -> Dict[str, Any]:
    """Built-in defaults, in the same shape as the YAML file."""
    return AppSettings().model_dump(mode='json')


def load_settings(config_path: Optional[Path] = None) -> AppSettings:
    """
    Load and validate settings.

    Raises:
        pydantic.ValidationError: If the configuration is invalid
    """
    return AppSettings.model_validate(load_config(config_path))


def save_config(config: Dict[str, Any], output_path: Path):
    """Write a configuration dictionary as YAML, creating parent directories."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w', encoding='utf-8') as f:
        yaml.safe_dump(config, f, default_flow_style=False, allow_unicode=True, sort_keys=False)

    logger.info(f"Saved configuration to {output_path}")
