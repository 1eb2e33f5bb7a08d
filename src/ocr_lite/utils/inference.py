"""
ONNX Runtime session wrapper.

The pipeline only needs one capability from a model: ``run(feeds) -> outputs``.
Anything exposing ``input_names`` and ``run`` with the same contract can be
used in place of InferenceSession.
"""

import logging
from pathlib import Path
from typing import Dict, List, Union
import numpy as np

logger = logging.getLogger(__name__)


class ModelInitializationError(RuntimeError):
    """A model could not be loaded or its session could not be created."""


class InferenceSession:
    """CPU onnxruntime session returning outputs keyed by name."""

    def __init__(self, model_path: Union[str, Path], num_threads: int = 1):
        import onnxruntime as ort

        self.model_path = Path(model_path)

        options = ort.SessionOptions()
        options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_BASIC
        options.enable_cpu_mem_arena = False
        options.enable_mem_pattern = False
        options.intra_op_num_threads = num_threads
        options.inter_op_num_threads = 1
        options.log_severity_level = 3

        self._session = ort.InferenceSession(
            str(self.model_path),
            sess_options=options,
            providers=["CPUExecutionProvider"]
        )
        self.input_names: List[str] = [i.name for i in self._session.get_inputs()]
        self.output_names: List[str] = [o.name for o in self._session.get_outputs()]

    def run(self, feeds: Dict[str, np.ndarray]) -> Dict[str, np.ndarray]:
        outputs = self._session.run(None, feeds)
        return dict(zip(self.output_names, outputs))

    def close(self):
        self._session = None


def load_session(model_path: Union[str, Path], num_threads: int = 1) -> InferenceSession:
    """
    Create an inference session for a model file.

    Raises:
        ModelInitializationError: If the file is missing or cannot be loaded
    """
    model_path = Path(model_path)
    if not model_path.exists():
        raise ModelInitializationError(f"Model file not found: {model_path}")

    try:
        session = InferenceSession(model_path, num_threads=num_threads)
    except ImportError as e:
        raise ModelInitializationError(
            f"onnxruntime is required. Install with: pip install onnxruntime ({e})"
        ) from e
    except Exception as e:
        raise ModelInitializationError(f"Failed to load model {model_path}: {e}") from e

    logger.info(f"Loaded model {model_path.name} (inputs: {session.input_names})")
    return session
