"""
Formula recognition: a vision encoder run once per region followed by a
greedy autoregressive decoder loop.
"""

from typing import Optional, Tuple

import numpy as np

from data.detections import TokenSequence
from data.errors import FormatError
from engines.onnx_engine import InferenceEngine
from postproc.latex_norm import tidy_latex
from postproc.vocabulary import Vocabulary, render
from preproc.image_buffer import RasterImage
from preproc.tensor_codec import SYMMETRIC, encode
from util.logging import get_logger

logger = get_logger(__name__)


def next_token(logits: np.ndarray, vocab_size: Optional[int] = None) -> int:
    """
    Pick the most likely token of the last time step.

    Args:
        logits: Decoder logits, shaped [1, seq, vocab] or [seq, vocab], or a
            flat buffer when ``vocab_size`` is given
        vocab_size: Row width for flat buffers

    Returns:
        Index of the maximum logit; ties resolve to the lowest index
    """
    values = np.asarray(logits, dtype=np.float32)

    if vocab_size is not None:
        flat = values.reshape(-1)
        if flat.size == 0 or flat.size % vocab_size:
            raise FormatError(
                f"Logits buffer of {flat.size} values is not a multiple of vocab size {vocab_size}"
            )
        last = flat[-vocab_size:]
    else:
        if values.ndim == 0 or values.size == 0:
            raise FormatError(f"Logits of shape {values.shape} are empty")
        last = values.reshape(-1, values.shape[-1])[-1]

    # np.argmax returns the first occurrence of the maximum
    return int(np.argmax(last))


class AutoregressiveDecoder:
    """
    Greedy token generation against a decoder model.

    The loop starts from ``[bos_id]`` and feeds the whole sequence plus the
    encoder hidden state at every step. It stops after appending
    ``eos_id`` or once the sequence holds ``max_length`` tokens.
    """

    def __init__(
        self,
        engine: InferenceEngine,
        bos_id: int = 1,
        eos_id: int = 2,
        max_length: int = 512,
        input_ids_name: str = 'input_ids',
        hidden_states_name: str = 'encoder_hidden_states',
        logits_name: str = 'logits',
        vocab_size: Optional[int] = None,
    ):
        if max_length < 2:
            raise ValueError(f"max_length must leave room for a generated token, got {max_length}")

        self.engine = engine
        self.bos_id = bos_id
        self.eos_id = eos_id
        self.max_length = max_length
        self.input_ids_name = input_ids_name
        self.hidden_states_name = hidden_states_name
        self.logits_name = logits_name
        self.vocab_size = vocab_size

    def step(self, tokens, hidden_states: np.ndarray) -> int:
        """Run one decoder pass and return the next token id."""
        input_ids = np.asarray([tokens], dtype=np.int64)
        outputs = self.engine.run(
            {self.input_ids_name: input_ids, self.hidden_states_name: hidden_states},
            {self.logits_name},
        )
        if self.logits_name not in outputs:
            raise FormatError(f"Decoder returned no '{self.logits_name}' output")
        return next_token(outputs[self.logits_name], self.vocab_size)

    def decode(self, hidden_states: np.ndarray) -> TokenSequence:
        """
        Generate a token sequence for one encoded region.

        Engine errors propagate; no partial sequence is returned for an
        aborted region.
        """
        tokens = [self.bos_id]

        while len(tokens) < self.max_length:
            token = self.step(tokens, hidden_states)
            tokens.append(token)
            if token == self.eos_id:
                return TokenSequence(ids=tokens, truncated=False)

        logger.warning(f"Decoding stopped at the length cap of {self.max_length} tokens")
        return TokenSequence(ids=tokens, truncated=True)


class FormulaRecognizer:
    """Turn a cropped formula image into LaTeX."""

    def __init__(
        self,
        encoder: InferenceEngine,
        decoder: AutoregressiveDecoder,
        vocabulary: Vocabulary,
        input_size: Tuple[int, int] = (384, 384),
        encoder_input_name: str = 'pixel_values',
        encoder_output_name: str = 'last_hidden_state',
        tidy_whitespace: bool = False,
    ):
        """
        Initialize recognizer.

        Args:
            encoder: Inference engine holding the vision encoder
            decoder: Decode loop bound to the decoder model
            vocabulary: Shared read-only vocabulary
            input_size: Encoder input (width, height)
            encoder_input_name: Name of the encoder image input
            encoder_output_name: Name of the encoder hidden state output
            tidy_whitespace: Remove spaces with no meaning in LaTeX
        """
        self.encoder = encoder
        self.decoder = decoder
        self.vocabulary = vocabulary
        self.input_size = input_size
        self.encoder_input_name = encoder_input_name
        self.encoder_output_name = encoder_output_name
        self.tidy_whitespace = tidy_whitespace

    def encode(self, image: RasterImage) -> np.ndarray:
        """Run the encoder once and return its hidden state."""
        width, height = self.input_size
        tensor = encode(image, width, height, SYMMETRIC)

        outputs = self.encoder.run({self.encoder_input_name: tensor}, {self.encoder_output_name})
        if self.encoder_output_name not in outputs:
            raise FormatError(f"Encoder returned no '{self.encoder_output_name}' output")
        return outputs[self.encoder_output_name]

    def recognize(self, image: RasterImage) -> Tuple[str, TokenSequence]:
        """
        Recognize the formula in a cropped image.

        Returns:
            Tuple of (latex, token sequence)

        Raises:
            PreprocessingError, InferenceError, FormatError
        """
        hidden_states = self.encode(image)
        tokens = self.decoder.decode(hidden_states)

        latex = render(tokens.ids, self.vocabulary)
        if self.tidy_whitespace:
            latex = tidy_latex(latex)

        logger.debug(f"Recognized {len(tokens)} tokens: {latex}")
        return latex, tokens

    def __repr__(self) -> str:
        return (
            f"FormulaRecognizer(input_size={self.input_size}, "
            f"max_length={self.decoder.max_length}, vocabulary={self.vocabulary})"
        )
