import unittest

import numpy as np

from clashvision.encoder import EncoderConfig, NormalizationConfig, TensorEncoder, as_bgr
from clashvision.errors import InvalidImage, UnsupportedFormat, UnsupportedImageFormat


def _red_image(h: int = 100, w: int = 200) -> np.ndarray:
    img = np.zeros((h, w, 3), dtype=np.uint8)
    img[:, :, 2] = 255  # BGR
    return img


class TestTensorEncoder(unittest.TestCase):
    def test_output_layout(self) -> None:
        enc = TensorEncoder()
        blob, t = enc(_red_image())
        self.assertEqual(blob.shape, (1, 3, 640, 640))
        self.assertEqual(blob.dtype, np.float32)
        self.assertTrue(blob.flags["C_CONTIGUOUS"])
        self.assertAlmostEqual(t.scale, 3.2)
        self.assertAlmostEqual(t.pad_y, 160.0)

    def test_rgb_order_and_scaling(self) -> None:
        blob, _ = TensorEncoder()(_red_image())
        # Content pixel: R=1, G=0, B=0 in channel order (R, G, B).
        self.assertAlmostEqual(float(blob[0, 0, 320, 320]), 1.0)
        self.assertAlmostEqual(float(blob[0, 1, 320, 320]), 0.0)
        self.assertAlmostEqual(float(blob[0, 2, 320, 320]), 0.0)
        # Padding pixel.
        for c in range(3):
            self.assertAlmostEqual(float(blob[0, c, 0, 0]), 114.0 / 255.0, places=6)

    def test_imagenet_normalization(self) -> None:
        cfg = EncoderConfig(normalization=NormalizationConfig.imagenet())
        blob, _ = TensorEncoder(cfg)(_red_image())
        self.assertAlmostEqual(float(blob[0, 0, 320, 320]), (1.0 - 0.485) / 0.229, places=5)
        self.assertAlmostEqual(float(blob[0, 1, 320, 320]), (0.0 - 0.456) / 0.224, places=5)

    def test_custom_input_size(self) -> None:
        cfg = EncoderConfig(input_size=(320, 256))
        blob, t = TensorEncoder(cfg)(_red_image())
        self.assertEqual(blob.shape, (1, 3, 256, 320))
        self.assertEqual(t.dst_size, (320, 256))

    def test_encoding_is_deterministic(self) -> None:
        rng = np.random.default_rng(0)
        img = rng.integers(0, 256, size=(123, 77, 3), dtype=np.uint8)
        enc = TensorEncoder()
        a, _ = enc(img)
        b, _ = enc(img)
        self.assertTrue(np.array_equal(a, b))

    def test_grayscale_and_bgra_inputs(self) -> None:
        gray = np.full((50, 60), 90, dtype=np.uint8)
        blob, _ = TensorEncoder()(gray)
        self.assertEqual(blob.shape, (1, 3, 640, 640))
        self.assertAlmostEqual(float(blob[0, 0, 320, 320]), float(blob[0, 2, 320, 320]))

        bgra = np.zeros((50, 60, 4), dtype=np.uint8)
        bgra[:, :, 3] = 255
        self.assertEqual(as_bgr(bgra).shape, (50, 60, 3))

    def test_unsupported_channel_count(self) -> None:
        img = np.zeros((10, 10, 5), dtype=np.uint8)
        with self.assertRaises(UnsupportedImageFormat) as ctx:
            TensorEncoder()(img)
        self.assertIsInstance(ctx.exception, InvalidImage)
        self.assertIsInstance(ctx.exception, UnsupportedFormat)
        self.assertEqual(ctx.exception.stage, "encode")

    def test_non_uint8_rejected(self) -> None:
        with self.assertRaises(UnsupportedImageFormat):
            TensorEncoder()(np.zeros((10, 10, 3), dtype=np.float32))

    def test_zero_dimension_rejected(self) -> None:
        with self.assertRaises(InvalidImage):
            TensorEncoder()(np.zeros((0, 10, 3), dtype=np.uint8))


class TestNormalizationConfig(unittest.TestCase):
    def test_presets(self) -> None:
        self.assertTrue(NormalizationConfig.none().is_identity)
        self.assertFalse(NormalizationConfig.imagenet().is_identity)

    def test_invalid(self) -> None:
        with self.assertRaises(ValueError):
            NormalizationConfig(std=(1.0, 0.0, 1.0))
        with self.assertRaises(ValueError):
            NormalizationConfig(mean=(0.0, 0.0))


if __name__ == "__main__":
    unittest.main()
