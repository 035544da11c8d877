import unittest

import numpy as np

from clashvision.decoder import Yolov8Decoder, Yolov10Decoder, YoloType, create_decoder
from clashvision.errors import UnsupportedFormat


def _yolov8_output(rows, num_classes: int = 2, anchors: int = 8) -> np.ndarray:
    # rows: (class_id, score, cx, cy, w, h)
    out = np.zeros((1, 4 + num_classes, anchors), dtype=np.float32)
    for j, (cls, score, cx, cy, w, h) in enumerate(rows):
        out[0, :4, j] = [cx, cy, w, h]
        out[0, 4 + cls, j] = score
    return out


class TestYolov8Decoder(unittest.TestCase):
    def test_channel_major_layout(self) -> None:
        p = _yolov8_output([(1, 0.9, 50, 60, 10, 20), (0, 0.7, 55, 66, 12, 18)])
        cands = Yolov8Decoder(conf_threshold=0.25).decode(p)
        self.assertEqual(len(cands), 2)
        self.assertEqual(cands[0].class_id, 1)
        self.assertAlmostEqual(cands[0].score, 0.9, places=6)
        self.assertEqual((cands[0].cx, cands[0].cy, cands[0].w, cands[0].h), (50.0, 60.0, 10.0, 20.0))
        self.assertEqual(cands[1].class_id, 0)
        self.assertAlmostEqual(cands[1].score, 0.7, places=6)

    def test_best_class_wins(self) -> None:
        p = np.zeros((1, 7, 1), dtype=np.float32)
        p[0, :4, 0] = [10, 10, 4, 4]
        p[0, 4:, 0] = [0.3, 0.8, 0.5]
        cands = Yolov8Decoder().decode(p)
        self.assertEqual([c.class_id for c in cands], [1])

    def test_threshold_is_inclusive(self) -> None:
        p = _yolov8_output([(0, 0.5, 10, 10, 4, 4), (0, 0.4999, 20, 20, 4, 4)])
        cands = Yolov8Decoder(conf_threshold=0.5).decode(p)
        self.assertEqual(len(cands), 1)
        self.assertEqual(cands[0].cx, 10.0)

    def test_non_finite_rows_dropped_and_scores_clipped(self) -> None:
        p = _yolov8_output([(0, 0.9, 10, 10, 4, 4), (0, 1.5, 20, 20, 4, 4), (1, 0.8, 30, 30, 4, 4)])
        p[0, 0, 0] = np.nan
        p[0, 5, 2] = np.inf
        cands = Yolov8Decoder().decode(p)
        self.assertEqual(len(cands), 1)
        self.assertEqual(cands[0].cx, 20.0)
        self.assertEqual(cands[0].score, 1.0)

    def test_empty_output(self) -> None:
        self.assertEqual(Yolov8Decoder().decode(np.zeros((1, 6, 0), dtype=np.float32)), [])
        self.assertEqual(Yolov8Decoder().decode(_yolov8_output([])), [])

    def test_shape_violations(self) -> None:
        dec = Yolov8Decoder()
        with self.assertRaises(UnsupportedFormat) as ctx:
            dec.decode(np.zeros((6, 8), dtype=np.float32))
        self.assertEqual(ctx.exception.stage, "decode")
        with self.assertRaises(UnsupportedFormat):
            dec.decode(np.zeros((2, 6, 8), dtype=np.float32))
        with self.assertRaises(UnsupportedFormat):
            dec.decode(np.zeros((1, 4, 8), dtype=np.float32))

    def test_num_classes_mismatch(self) -> None:
        dec = Yolov8Decoder(num_classes=3)
        with self.assertRaises(UnsupportedFormat):
            dec.decode(_yolov8_output([], num_classes=2))
        self.assertEqual(dec.decode(_yolov8_output([], num_classes=3)), [])

    def test_invalid_threshold(self) -> None:
        with self.assertRaises(ValueError):
            Yolov8Decoder(conf_threshold=1.5)


class TestYolov10Decoder(unittest.TestCase):
    def test_invalid_num_classes(self) -> None:
        with self.assertRaises(ValueError):
            Yolov10Decoder(num_classes=0)
        with self.assertRaises(ValueError):
            Yolov10Decoder(num_classes=-2)

    def test_corner_rows(self) -> None:
        p = np.array([[[10, 20, 30, 40, 0.9, 1], [11, 21, 31, 41, 0.1, 3]]], dtype=np.float32)
        cands = Yolov10Decoder(conf_threshold=0.25).decode(p)
        self.assertEqual(len(cands), 1)
        c = cands[0]
        self.assertEqual(c.class_id, 1)
        self.assertEqual((c.cx, c.cy, c.w, c.h), (20.0, 30.0, 20.0, 20.0))
        self.assertEqual(c.as_xyxy(), (10.0, 20.0, 30.0, 40.0))

    def test_bad_class_ids_dropped(self) -> None:
        p = np.array(
            [[[10, 20, 30, 40, 0.9, np.nan], [10, 20, 30, 40, 0.9, -1], [10, 20, 30, 40, 0.9, 5]]],
            dtype=np.float32,
        )
        self.assertEqual(Yolov10Decoder().decode(p[:, :2]), [])
        self.assertEqual(len(Yolov10Decoder().decode(p)), 1)
        self.assertEqual(Yolov10Decoder(num_classes=2).decode(p), [])

    def test_shape_violations(self) -> None:
        with self.assertRaises(UnsupportedFormat):
            Yolov10Decoder().decode(np.zeros((1, 8, 7), dtype=np.float32))
        with self.assertRaises(UnsupportedFormat):
            Yolov10Decoder().decode(np.zeros((8, 6), dtype=np.float32))

    def test_empty(self) -> None:
        self.assertEqual(Yolov10Decoder().decode(np.zeros((1, 0, 6), dtype=np.float32)), [])


class TestCreateDecoder(unittest.TestCase):
    def test_by_name(self) -> None:
        self.assertIsInstance(create_decoder("yolov8"), Yolov8Decoder)
        self.assertIsInstance(create_decoder("YOLOv10"), Yolov10Decoder)
        self.assertIs(YoloType.from_name(" yolov8 "), YoloType.YOLOV8)

    def test_unknown_type(self) -> None:
        with self.assertRaises(ValueError):
            create_decoder("yolov5")


if __name__ == "__main__":
    unittest.main()
