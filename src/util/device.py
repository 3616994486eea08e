"""
Execution provider selection for ONNX Runtime.
"""

from typing import Any, Dict, List, Optional, Tuple, Union

import onnxruntime as ort

from util.logging import get_logger

logger = get_logger(__name__)

ProviderSpec = Union[str, Tuple[str, Dict[str, Any]]]

TENSORRT = 'TensorrtExecutionProvider'
CUDA = 'CUDAExecutionProvider'
COREML = 'CoreMLExecutionProvider'
CPU = 'CPUExecutionProvider'


def get_available_providers() -> List[str]:
    """Providers compiled into the installed onnxruntime build."""
    return list(ort.get_available_providers())


def get_providers(
    use_gpu: bool = False,
    use_tensorrt: bool = False,
    use_coreml: bool = False,
    available: Optional[List[str]] = None,
) -> List[ProviderSpec]:
    """
    Build an ordered provider list.

    Priority: TensorRT > CUDA > CoreML > CPU. Accelerators are only added
    when requested and present; CPU is always the last fallback.

    Args:
        use_gpu: Request CUDA
        use_tensorrt: Request TensorRT
        use_coreml: Request CoreML (Apple devices)
        available: Override of the available provider names (for tests)

    Returns:
        Provider list accepted by ``onnxruntime.InferenceSession``
    """
    if available is None:
        available = get_available_providers()

    providers: List[ProviderSpec] = []

    if use_tensorrt:
        if TENSORRT in available:
            providers.append((TENSORRT, {}))
        else:
            logger.warning("TensorRT requested but not available")

    if use_gpu:
        if CUDA in available:
            providers.append((CUDA, {"cudnn_conv_algo_search": "DEFAULT"}))
        else:
            logger.warning("CUDA requested but not available")

    if use_coreml:
        if COREML in available:
            providers.append(COREML)
        else:
            logger.warning("CoreML requested but not available")

    providers.append((CPU, {"arena_extend_strategy": "kSameAsRequested"}))
    return providers


def provider_names(providers: List[ProviderSpec]) -> List[str]:
    """Strip provider options, keeping the names only."""
    return [p[0] if isinstance(p, tuple) else p for p in providers]
