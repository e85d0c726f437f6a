from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple, Union

import numpy as np

from ..errors import ConfigError
from ..feature_map import FeatureMapLayout, RawFeatureMap

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    Configuration for ONNX Runtime inference.

    - providers: ORT execution providers (e.g., ["CUDAExecutionProvider", "CPUExecutionProvider"])
    - input_name: override the auto-selected input
    - output_layout: memory layout of the raw YOLO outputs; ONNX exports are
      usually NCHW, Keras/TF conversions NHWC
    - num_threads: intra-op thread count, 0 lets ORT decide
    """

    providers: Optional[Sequence[str]] = None
    input_name: Optional[str] = None
    output_layout: FeatureMapLayout = FeatureMapLayout.CHANNEL_MAJOR
    num_threads: int = 0


class OnnxRuntimeBackend:
    """
    ONNX Runtime backend for multi-output YOLO models.

    Takes one preprocessed float32 blob and returns every model output as a
    RawFeatureMap, in session output order.
    """

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required for the ONNX backend. Install it with `pip install onnxruntime` "
                "(or `onnxruntime-gpu`)."
            ) from e

        self.cfg = cfg
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        sess_opts = ort.SessionOptions()
        if cfg.num_threads > 0:
            sess_opts.intra_op_num_threads = cfg.num_threads
        providers = list(cfg.providers) if cfg.providers is not None else None
        self.session = ort.InferenceSession(str(self.model_path), sess_options=sess_opts, providers=providers)

        model_input = self.session.get_inputs()[0]
        if cfg.input_name is not None:
            matches = [i for i in self.session.get_inputs() if i.name == cfg.input_name]
            if not matches:
                raise ConfigError(f"Model has no input named {cfg.input_name!r}")
            model_input = matches[0]
        self.input_name = model_input.name
        if model_input.type != "tensor(float)":
            raise ConfigError(f"Only float32 model inputs are supported, got {model_input.type}")
        self.input_layout, self.input_size, self.input_channels = _parse_input_shape(model_input.shape)
        self.output_names = [o.name for o in self.session.get_outputs()]
        logger.debug(
            "Loaded %s: input %s %s (%s), outputs %s",
            self.model_path,
            self.input_name,
            self.input_size,
            self.input_layout.value,
            self.output_names,
        )

    @property
    def providers_in_use(self) -> Sequence[str]:
        # ORT returns providers in priority order for this session.
        return tuple(self.session.get_providers())

    def infer(self, blob: np.ndarray) -> List[RawFeatureMap]:
        outputs = self.session.run(self.output_names, {self.input_name: blob})
        return [
            RawFeatureMap.from_array(out, self.cfg.output_layout, name=name)
            for name, out in zip(self.output_names, outputs)
        ]


def _parse_input_shape(shape: Sequence[Any]) -> Tuple[FeatureMapLayout, Tuple[int, int], int]:
    """
    Work out (layout, (width, height), channels) from an ORT input shape such as
    [1, 3, 416, 416] or ['batch', 416, 416, 3].
    """

    if len(shape) != 4:
        raise ConfigError(f"Expected a 4-D image input, got shape {shape}")
    dims = [d if isinstance(d, int) and d > 0 else None for d in shape]

    if dims[1] in (1, 3):
        layout, channels, height, width = FeatureMapLayout.CHANNEL_MAJOR, dims[1], dims[2], dims[3]
    elif dims[3] in (1, 3):
        layout, height, width, channels = FeatureMapLayout.CHANNEL_MINOR, dims[1], dims[2], dims[3]
    else:
        raise ConfigError(f"Could not find the channel axis of input shape {shape}")

    if width is None or height is None:
        raise ConfigError(f"Model input has dynamic spatial size {shape}; a fixed size is required")
    if width != height:
        raise ConfigError(f"Model input must be square, got {width}x{height}")
    return layout, (int(width), int(height)), int(channels)
