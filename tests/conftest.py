"""
Shared fixtures: scripted inference engines and small vocabularies.
"""

import threading

import numpy as np
import pytest

from postproc.vocabulary import Vocabulary, clear_vocabulary_cache


class ScriptedDetectorEngine:
    """Detector engine returning fixed output rows."""

    def __init__(self, rows, output_name='output0'):
        self.rows = np.asarray(rows, dtype=np.float32).reshape(1, -1, 6)
        self.output_name = output_name
        self.calls = []

    def input_names(self):
        return {'images'}

    def output_names(self):
        return {self.output_name}

    def run(self, inputs, requested_outputs=None):
        self.calls.append(inputs)
        return {self.output_name: self.rows}


class EchoEncoderEngine:
    """Encoder engine returning a tiny hidden state."""

    def __init__(self):
        self.calls = 0

    def input_names(self):
        return {'pixel_values'}

    def output_names(self):
        return {'last_hidden_state'}

    def run(self, inputs, requested_outputs=None):
        self.calls += 1
        return {'last_hidden_state': np.zeros((1, 4, 8), dtype=np.float32)}


class ScriptedDecoderEngine:
    """
    Decoder engine that emits a fixed token script.

    The token at position ``len(input_ids) - 1`` of the script is the
    argmax of the returned last-step logits. Past the end of the script
    the last token repeats. Call number ``hang_on_call`` blocks until
    ``release`` is set.
    """

    def __init__(self, script, vocab_size=16, fail_on_call=None, error=None, hang_on_call=None):
        self.script = list(script)
        self.vocab_size = vocab_size
        self.fail_on_call = fail_on_call
        self.error = error
        self.hang_on_call = hang_on_call
        self.release = threading.Event()
        self.calls = 0
        self.seen_lengths = []
        self._lock = threading.Lock()

    def input_names(self):
        return {'input_ids', 'encoder_hidden_states'}

    def output_names(self):
        return {'logits'}

    def run(self, inputs, requested_outputs=None):
        with self._lock:
            self.calls += 1
            call = self.calls
        if self.fail_on_call is not None and call == self.fail_on_call:
            raise self.error
        if self.hang_on_call is not None and call == self.hang_on_call:
            self.release.wait(timeout=5)

        input_ids = inputs['input_ids']
        assert input_ids.dtype == np.int64
        length = input_ids.shape[1]
        self.seen_lengths.append(length)

        token = self.script[min(length - 1, len(self.script) - 1)]
        logits = np.zeros((1, length, self.vocab_size), dtype=np.float32)
        logits[0, -1, token] = 10.0
        return {'logits': logits}


@pytest.fixture
def vocabulary():
    """Vocabulary with a few LaTeX pieces."""
    return Vocabulary({
        0: '<pad>',
        1: '<s>',
        2: '</s>',
        5: 'x',
        7: 'Ġ+Ġy',
        9: '^{2}',
    })


@pytest.fixture
def tokenizer_document():
    """Parsed tokenizer.json content."""
    return {
        'model': {
            'type': 'BPE',
            'vocab': {'<pad>': 0, '<s>': 1, '</s>': 2, 'x': 5, 'Ġ+Ġy': 7},
        },
        'added_tokens': [
            {'id': 3, 'content': '<unk>', 'special': True},
        ],
    }


@pytest.fixture(autouse=True)
def _reset_vocabulary_cache():
    clear_vocabulary_cache()
    yield
    clear_vocabulary_cache()


@pytest.fixture
def detector_engine():
    """Factory for detector engines with fixed rows."""
    return ScriptedDetectorEngine


@pytest.fixture
def encoder_engine():
    return EchoEncoderEngine()


@pytest.fixture
def decoder_engine():
    """Factory for decoder engines following a token script."""
    return ScriptedDecoderEngine
