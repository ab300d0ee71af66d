"""
Frame preprocessing for the embedding model.

Every frame goes through the same pipeline before inference so that
vectors produced by one extractor are comparable with each other:
uint8 RGB, bilinear resize to a fixed square, scale to [-1, 1].
"""

import os
import logging
from typing import Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)

# Side length of the square model input. MobileNet-family models expect 224.
INPUT_SIZE = int(os.environ.get("EMBED_INPUT_SIZE", "224"))

# x / 127 - 1 maps [0, 254] onto [-1, 1]; 255 lands just above 1.
PIXEL_SCALE = 127.0


def normalize_image(image_np: np.ndarray) -> np.ndarray:
    """Ensure image is uint8 RGB format."""
    if image_np.dtype != np.uint8:
        if image_np.size and image_np.max() <= 1.0:
            image_np = (image_np * 255).astype(np.uint8)
        else:
            image_np = np.clip(image_np, 0, 255).astype(np.uint8)

    if image_np.ndim == 2:
        image_np = cv2.cvtColor(image_np, cv2.COLOR_GRAY2RGB)
    elif image_np.ndim == 3 and image_np.shape[2] == 4:
        image_np = cv2.cvtColor(image_np, cv2.COLOR_RGBA2RGB)
    return image_np


def frame_dimensions(frame) -> Tuple[int, int]:
    """Return (width, height) of a frame, (0, 0) for a missing one."""
    if frame is None:
        return 0, 0
    shape = getattr(frame, "shape", None)
    if shape is None or len(shape) < 2:
        return 0, 0
    return int(shape[1]), int(shape[0])


def is_frame_ready(frame) -> bool:
    """A frame is usable once it has nonzero width and height."""
    width, height = frame_dimensions(frame)
    return width > 0 and height > 0


def prepare_model_input(image_np: np.ndarray,
                        size: int = INPUT_SIZE,
                        layout: str = "nchw") -> np.ndarray:
    """
    Turn an RGB frame into a single-item model batch.

    Process:
        1. Normalize to uint8 RGB
        2. Bilinear resize to size x size
        3. Scale pixel values to the symmetric [-1, 1] range
        4. Add a batch axis in the requested layout

    Args:
        image_np: RGB image, any dtype accepted by normalize_image().
        size: Side length of the square model input.
        layout: "nchw" (OpenCV DNN / ONNX) or "nhwc" (TF-style models).

    Returns:
        Float32 array of shape (1, 3, size, size) or (1, size, size, 3).
    """
    if layout not in ("nchw", "nhwc"):
        raise ValueError(f"Unsupported layout: {layout}")

    image_np = normalize_image(image_np)
    resized = cv2.resize(image_np, (size, size), interpolation=cv2.INTER_LINEAR)
    scaled = resized.astype(np.float32) / PIXEL_SCALE - 1.0

    if layout == "nchw":
        scaled = scaled.transpose(2, 0, 1)
    return np.expand_dims(scaled, 0)
