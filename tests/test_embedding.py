"""Tests for embedding extraction and model input preparation."""

import asyncio

import numpy as np
import pytest

from object_finder.embedding import EmbeddingExtractor, OnnxEmbeddingModel
from object_finder.errors import ExtractorError, FrameInvalid, ModelUnavailable
from object_finder.preprocessing import (
    frame_dimensions, is_frame_ready, normalize_image, prepare_model_input,
)

from conftest import ChannelMeanModel, FixedModel


class TestPrepareModelInput:
    """Tests for the resize + [-1, 1] scaling pipeline."""

    def test_nchw_shape(self, red_square_image):
        batch = prepare_model_input(red_square_image, size=224)
        assert batch.shape == (1, 3, 224, 224)
        assert batch.dtype == np.float32

    def test_nhwc_shape(self, red_square_image):
        batch = prepare_model_input(red_square_image, size=64, layout="nhwc")
        assert batch.shape == (1, 64, 64, 3)

    def test_symmetric_range(self):
        black = np.zeros((10, 10, 3), dtype=np.uint8)
        white = np.full((10, 10, 3), 254, dtype=np.uint8)
        assert np.allclose(prepare_model_input(black, size=8), -1.0)
        assert np.allclose(prepare_model_input(white, size=8), 1.0)

    def test_float_image_rescaled(self):
        image = np.full((10, 10, 3), 0.5, dtype=np.float32)
        assert normalize_image(image).dtype == np.uint8

    def test_grayscale_expanded(self):
        gray = np.full((10, 10), 100, dtype=np.uint8)
        assert prepare_model_input(gray, size=8).shape == (1, 3, 8, 8)

    def test_unknown_layout_raises(self, red_square_image):
        with pytest.raises(ValueError, match="layout"):
            prepare_model_input(red_square_image, layout="chw")


class TestFrameReadiness:

    def test_dimensions(self, red_square_image):
        assert frame_dimensions(red_square_image) == (200, 200)

    def test_missing_frame(self):
        assert frame_dimensions(None) == (0, 0)
        assert not is_frame_ready(None)

    def test_zero_width(self):
        assert not is_frame_ready(np.zeros((480, 0, 3), dtype=np.uint8))

    def test_ready(self, ready_frame):
        assert is_frame_ready(ready_frame)


class TestEmbeddingExtractor:
    """Tests for the extractor contract."""

    def test_model_not_loaded(self, ready_frame):
        extractor = EmbeddingExtractor()
        assert not extractor.ready
        with pytest.raises(ModelUnavailable):
            extractor.extract(ready_frame)

    def test_zero_sized_frame(self, empty_frame):
        extractor = EmbeddingExtractor(model=FixedModel([1, 0, 0]))
        with pytest.raises(FrameInvalid):
            extractor.extract(empty_frame)

    def test_output_flat_float32(self, ready_frame):
        extractor = EmbeddingExtractor(model=FixedModel(np.arange(1024)))
        vector = extractor.extract(ready_frame)
        assert vector.shape == (1024,)
        assert vector.dtype == np.float32
        assert extractor.dimension == 1024

    def test_output_read_only(self, ready_frame):
        vector = EmbeddingExtractor(model=FixedModel([1, 2, 3])).extract(ready_frame)
        with pytest.raises(ValueError):
            vector[0] = 5

    def test_dimension_change_raises(self, ready_frame):
        model = FixedModel([1, 2, 3])
        extractor = EmbeddingExtractor(model=model)
        extractor.extract(ready_frame)
        model.vector = np.array([1, 2], dtype=np.float32)
        with pytest.raises(ExtractorError):
            extractor.extract(ready_frame)

    def test_distinct_images_distinct_vectors(self, red_square_image, blue_circle_image):
        extractor = EmbeddingExtractor(model=ChannelMeanModel())
        red = extractor.extract(red_square_image)
        blue = extractor.extract(blue_circle_image)
        assert np.linalg.norm(red - blue) > 0.1

    def test_same_image_same_vector(self, red_square_image):
        extractor = EmbeddingExtractor(model=ChannelMeanModel())
        a = extractor.extract(red_square_image)
        b = extractor.extract(red_square_image.copy())
        assert np.allclose(a, b)

    def test_async_load(self, ready_frame):
        extractor = asyncio.run(EmbeddingExtractor().load(FixedModel, [0, 1, 0]))
        assert extractor.ready
        assert np.allclose(extractor.extract(ready_frame), [0, 1, 0])

    def test_load_is_once(self):
        first = FixedModel([1, 0, 0])
        extractor = EmbeddingExtractor(model=first)
        asyncio.run(extractor.load(FixedModel, [0, 1, 0]))
        extractor.attach(FixedModel([0, 0, 1]))
        assert extractor._model is first


class TestOnnxEmbeddingModel:

    def test_missing_file(self, tmp_path):
        with pytest.raises(ModelUnavailable, match="not found"):
            OnnxEmbeddingModel(str(tmp_path / "missing.onnx"))

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "broken.onnx"
        path.write_bytes(b"not a model")
        with pytest.raises(ModelUnavailable):
            OnnxEmbeddingModel(str(path))
