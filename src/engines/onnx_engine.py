"""
Inference engine capability and its ONNX Runtime binding.

The pipeline only depends on the narrow ``InferenceEngine`` protocol:
named input tensors in, named output tensors out. Tests substitute mock
engines; production uses ``OnnxInferenceEngine``.
"""

import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Set, Union, runtime_checkable

import numpy as np
import onnxruntime as ort

from data.errors import InferenceError, InferenceTimeoutError, ModelLoadError
from util.device import ProviderSpec, get_providers, provider_names
from util.logging import get_logger

logger = get_logger(__name__)

Tensors = Dict[str, np.ndarray]


@runtime_checkable
class InferenceEngine(Protocol):
    """Synchronous request/response model execution."""

    def input_names(self) -> Set[str]:
        ...

    def output_names(self) -> Set[str]:
        ...

    def run(self, inputs: Tensors, requested_outputs: Optional[Set[str]] = None) -> Tensors:
        ...


class OnnxInferenceEngine:
    """
    ONNX Runtime session wrapper.

    Features:
    - Lazy or explicit model loading
    - TensorRT > CUDA > CoreML > CPU provider fallback
    - Full graph optimization, configurable intra-op threads
    """

    def __init__(
        self,
        model_path: Union[str, Path],
        providers: Optional[List[ProviderSpec]] = None,
        num_threads: int = 2,
    ):
        """
        Initialize engine.

        Args:
            model_path: Path to ONNX model file
            providers: Execution providers (default: CPU only)
            num_threads: Intra-op threads for CPU execution (-1 for auto)
        """
        self.model_path = Path(model_path)
        self.providers = providers or get_providers()
        self.num_threads = num_threads
        self.session: Optional[ort.InferenceSession] = None

    @classmethod
    def load_model(cls, model_path: Union[str, Path], **kwargs) -> 'OnnxInferenceEngine':
        """Create an engine and load its model immediately."""
        engine = cls(model_path, **kwargs)
        engine.load()
        return engine

    def load(self):
        """
        Create the inference session.

        Raises:
            ModelLoadError: If the model file is missing or cannot be loaded
        """
        if self.session is not None:
            return

        if not self.model_path.is_file():
            raise ModelLoadError(f"Model not found: {self.model_path}")

        sess_opt = ort.SessionOptions()
        sess_opt.log_severity_level = 3
        sess_opt.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        if self.num_threads != -1:
            sess_opt.intra_op_num_threads = self.num_threads

        try:
            self.session = ort.InferenceSession(
                str(self.model_path),
                sess_options=sess_opt,
                providers=self.providers,
            )
        except Exception as e:
            # onnxruntime raises its own exception types from the C++ layer
            raise ModelLoadError(f"Failed to load {self.model_path}: {e}") from e

        logger.info(
            f"Loaded ONNX model {self.model_path.name} "
            f"(providers={provider_names(self.providers)})"
        )
        logger.debug(f"ONNX inputs: {sorted(self.input_names())}")
        logger.debug(f"ONNX outputs: {sorted(self.output_names())}")

    def _session(self) -> ort.InferenceSession:
        if self.session is None:
            self.load()
        return self.session

    def input_names(self) -> Set[str]:
        return {node.name for node in self._session().get_inputs()}

    def output_names(self) -> Set[str]:
        return {node.name for node in self._session().get_outputs()}

    def run(self, inputs: Tensors, requested_outputs: Optional[Set[str]] = None) -> Tensors:
        """
        Run the model.

        Args:
            inputs: Mapping of input names to arrays
            requested_outputs: Output names to fetch (default: all outputs)

        Returns:
            Mapping of output names to arrays

        Raises:
            InferenceError: If the session fails or an output is unknown
        """
        session = self._session()
        names = sorted(requested_outputs) if requested_outputs else [
            node.name for node in session.get_outputs()
        ]

        missing = set(names) - self.output_names()
        if missing:
            raise InferenceError(f"Model {self.model_path.name} has no outputs {sorted(missing)}")

        try:
            values = session.run(names, inputs)
        except Exception as e:
            raise InferenceError(f"Inference failed for {self.model_path.name}: {e}") from e

        return dict(zip(names, values))

    def close(self):
        """Drop the inference session; the next call reloads the model."""
        self.session = None

    def __repr__(self) -> str:
        return f"OnnxInferenceEngine(model={self.model_path.name}, loaded={self.session is not None})"


class TimeoutEngine:
    """
    Bound the duration of every call to a wrapped engine.

    Each call runs on its own daemon thread. When a call exceeds the limit an
    ``InferenceTimeoutError`` is raised and the thread is abandoned: it cannot
    be interrupted, but later calls never wait behind it and it does not keep
    the interpreter alive at exit.
    """

    def __init__(self, engine: InferenceEngine, timeout_seconds: float):
        if timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {timeout_seconds}")
        self.engine = engine
        self.timeout_seconds = timeout_seconds

    def input_names(self) -> Set[str]:
        return self.engine.input_names()

    def output_names(self) -> Set[str]:
        return self.engine.output_names()

    def _call(self, future: Future, inputs: Tensors, requested_outputs: Optional[Set[str]]):
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(self.engine.run(inputs, requested_outputs))
        except Exception as e:
            future.set_exception(e)

    def run(self, inputs: Tensors, requested_outputs: Optional[Set[str]] = None) -> Tensors:
        future: Future = Future()
        threading.Thread(
            target=self._call,
            args=(future, inputs, requested_outputs),
            name='inference',
            daemon=True,
        ).start()

        try:
            return future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError:
            logger.warning(f"Abandoning inference call after {self.timeout_seconds}s")
            raise InferenceTimeoutError(
                f"Inference did not finish within {self.timeout_seconds}s"
            ) from None

    def close(self):
        """Close the wrapped engine when it supports closing."""
        close = getattr(self.engine, 'close', None)
        if close is not None:
            close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
