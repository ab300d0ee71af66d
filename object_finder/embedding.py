"""
Embedding extraction.

Wraps an image-embedding model behind a small contract: one RGB frame in,
one flat float32 feature vector out. The model itself is a black box; it
only has to expose ``infer(batch) -> array``. OnnxEmbeddingModel is the
bundled backend and runs an ONNX export (e.g. MobileNet without its
classifier head) through OpenCV's DNN module.
"""

import os
import asyncio
import logging
from typing import Any, Callable, Optional

import cv2
import numpy as np

from .errors import ExtractorError, FrameInvalid, ModelUnavailable
from .preprocessing import INPUT_SIZE, is_frame_ready, prepare_model_input

logger = logging.getLogger(__name__)

# Name of the ONNX output to read features from. Empty = the net's default.
DEFAULT_OUTPUT_LAYER = os.environ.get("EMBED_OUTPUT_LAYER") or None


class OnnxEmbeddingModel:
    """ONNX feature model executed with cv2.dnn."""

    def __init__(self, model_path: str, output_layer: Optional[str] = DEFAULT_OUTPUT_LAYER):
        if not os.path.exists(model_path):
            raise ModelUnavailable(f"Model file not found: {model_path}")
        try:
            self.net = cv2.dnn.readNetFromONNX(model_path)
        except cv2.error as e:
            raise ModelUnavailable(f"Could not load model {model_path}: {e}") from e

        self.model_path = model_path
        self.output_layer = output_layer
        logger.info(f"Loaded embedding model: {model_path}")

    def infer(self, batch: np.ndarray) -> np.ndarray:
        self.net.setInput(batch)
        if self.output_layer:
            return self.net.forward(self.output_layer)
        return self.net.forward()


class EmbeddingExtractor:
    """
    Turns frames into feature vectors with one fixed preprocessing pipeline.

    All vectors produced by one instance share the same preprocessing and
    dimensionality, so they can be compared with cosine similarity.
    """

    def __init__(self, model: Any = None, input_size: int = INPUT_SIZE, layout: str = "nchw"):
        """
        Args:
            model: Object exposing infer(batch). May be attached later
                   with attach() or load().
            input_size: Side length of the square model input.
            layout: Batch layout the model expects ("nchw" or "nhwc").
        """
        self.input_size = input_size
        self.layout = layout
        self.dimension: Optional[int] = None
        self._model = model

    @property
    def ready(self) -> bool:
        return self._model is not None

    def attach(self, model: Any) -> None:
        """Attach an already-loaded model. Only the first one sticks."""
        if self._model is not None:
            logger.warning("Embedding model already attached, ignoring new model")
            return
        self._model = model

    async def load(self, loader: Callable[..., Any], *args, **kwargs) -> "EmbeddingExtractor":
        """
        Load the model once, off the event loop.

        Args:
            loader: Blocking callable returning a model (e.g. OnnxEmbeddingModel).

        Returns:
            self, so callers can write ``extractor = await EmbeddingExtractor().load(...)``.
        """
        if self._model is None:
            logger.info("Loading embedding model...")
            model = await asyncio.to_thread(loader, *args, **kwargs)
            self.attach(model)
            logger.info("Embedding model ready")
        return self

    def extract(self, frame: np.ndarray) -> np.ndarray:
        """
        Compute the feature vector of one frame.

        Args:
            frame: RGB image of shape (H, W, 3).

        Returns:
            Read-only float32 vector of length self.dimension.

        Raises:
            ModelUnavailable: No model loaded yet.
            FrameInvalid: Frame is missing or has zero width/height.
            ExtractorError: Model output length changed between calls.
        """
        if self._model is None:
            raise ModelUnavailable("Embedding model is not loaded")
        if not is_frame_ready(frame):
            raise FrameInvalid("Frame has zero spatial dimensions")

        batch = prepare_model_input(frame, self.input_size, self.layout)
        raw = self._model.infer(batch)
        vector = np.asarray(raw, dtype=np.float32).reshape(-1).copy()

        if self.dimension is None:
            self.dimension = vector.shape[0]
            logger.debug(f"Embedding dimension fixed at {self.dimension}")
        elif vector.shape[0] != self.dimension:
            raise ExtractorError(
                f"Model produced {vector.shape[0]} values, expected {self.dimension}"
            )

        vector.setflags(write=False)
        return vector
