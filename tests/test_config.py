"""
Tests for configuration loading, logging and timing helpers.
"""

import json
import logging
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from data.block_types import RegionOrder, SelectionPolicy
from util.config import (
    AppSettings,
    expand_env_vars,
    get_default_config,
    load_config,
    load_settings,
    save_config,
)
from util.logging import JSONLFormatter, get_logger, setup_logging
from util.timing import Timer, timeit, timed_operation

REPO_CONFIG = Path(__file__).parent.parent / "configs" / "app.yaml"


def test_default_settings():
    """Test defaults match the bundled models."""
    settings = AppSettings()

    assert settings.detector.input_width == 768
    assert settings.detector.confidence_threshold == 0.5
    assert settings.detector.iou_threshold == 0.45
    assert settings.detector.selection == SelectionPolicy.ALL
    assert settings.recognizer.input_width == 384
    assert settings.recognizer.max_length == 512
    assert (settings.vocabulary.pad_id, settings.vocabulary.bos_id, settings.vocabulary.eos_id) == (0, 1, 2)
    assert settings.pipeline.region_order == RegionOrder.CONFIDENCE


def test_bundled_config_is_valid(monkeypatch):
    monkeypatch.setenv("FORMULA_OCR_MODELS", "/opt/models")

    settings = load_settings(REPO_CONFIG)

    assert settings.detector.model_path == Path("/opt/models/mfd.onnx")
    assert settings.vocabulary.space_marker == 'Ġ'
    assert settings.engine.timeout_seconds == 30


def test_missing_config_uses_defaults(tmp_path):
    config = load_config(tmp_path / "missing.yaml")
    assert config == get_default_config()


def test_invalid_yaml_uses_defaults(tmp_path):
    path = tmp_path / "app.yaml"
    path.write_text("detector: [unclosed", encoding='utf-8')

    assert load_config(path) == get_default_config()


def test_partial_config(tmp_path):
    """Sections not present in the file keep their defaults."""
    path = tmp_path / "app.yaml"
    path.write_text("detector:\n  confidence_threshold: 0.3\n", encoding='utf-8')

    settings = load_settings(path)

    assert settings.detector.confidence_threshold == 0.3
    assert settings.recognizer.max_length == 512


@pytest.mark.parametrize("config", [
    {'detector': {'unknown_key': 1}},
    {'detector': {'record_width': 5}},
    {'detector': {'selection': 'second'}},
    {'recognizer': {'max_length': 1}},
    {'vocabulary': {'bos_id': 0}},
    {'engine': {'timeout_seconds': 0}},
    {'pipeline': {'max_workers': 0}},
    {'logging': {'level': 'VERBOSE'}},
    {'logging': {'format': 'xml'}},
])
def test_invalid_settings(config):
    with pytest.raises(ValidationError):
        AppSettings.model_validate(config)


def test_log_level_is_normalized():
    assert AppSettings.model_validate({'logging': {'level': 'debug'}}).logging.level == 'DEBUG'


def test_expand_env_vars(monkeypatch):
    """Test ${VAR} expansion in nested values."""
    monkeypatch.setenv("MODEL_DIR", "/models")
    monkeypatch.delenv("UNSET_DIR", raising=False)

    config = {
        'a': '${MODEL_DIR}/mfd.onnx',
        'b': ['${MODEL_DIR}', 3],
        'c': '${UNSET_DIR}/x',
    }

    assert expand_env_vars(config) == {
        'a': '/models/mfd.onnx',
        'b': ['/models', 3],
        'c': '${UNSET_DIR}/x',
    }


def test_save_config_round_trip(tmp_path):
    path = tmp_path / "out" / "app.yaml"

    save_config(get_default_config(), path)

    with open(path, 'r', encoding='utf-8') as f:
        assert AppSettings.model_validate(yaml.safe_load(f)) == AppSettings()


def test_jsonl_formatter():
    record = logging.LogRecord(
        name='formula_ocr.test', level=logging.INFO, pathname=__file__, lineno=1,
        msg="Detected %d regions", args=(3,), exc_info=None,
    )
    record.stage = 'detection'
    record.region = 2

    data = json.loads(JSONLFormatter().format(record))

    assert data['msg'] == "Detected 3 regions"
    assert data['level'] == 'INFO'
    assert data['stage'] == 'detection'
    assert data['region'] == 2
    assert 'elapsed_ms' not in data


def test_setup_logging_writes_file(tmp_path):
    logger = setup_logging(log_level='DEBUG', log_dir=tmp_path, log_format='json')
    try:
        get_logger('test').info("hello")
        for handler in logger.handlers:
            handler.flush()

        line = (tmp_path / 'formula_ocr.log').read_text(encoding='utf-8').strip()
        assert json.loads(line)['logger'] == 'formula_ocr.test'
    finally:
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)


def test_timer():
    timer = Timer().start()
    elapsed = timer.stop()

    assert elapsed >= 0
    assert timer.elapsed_ms == int(elapsed * 1000)

    with pytest.raises(RuntimeError):
        Timer().stop()


def test_timed_operation_logs():
    messages = []

    with timed_operation("stage", messages.append) as timer:
        pass

    assert timer.elapsed is not None
    assert messages and messages[0].startswith("stage took")


def test_timeit_preserves_result_and_errors():
    @timeit
    def double(x):
        return x * 2

    @timeit(name="failing stage")
    def fail():
        raise ValueError("bad")

    assert double(4) == 8
    assert double.__name__ == 'double'
    with pytest.raises(ValueError):
        fail()
