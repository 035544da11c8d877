import unittest

import numpy as np

from clashvision.types import Detection
from clashvision.visualize import DrawConfig, distinct_colors, draw_detections


class TestVisualize(unittest.TestCase):
    def test_distinct_colors(self) -> None:
        colors = distinct_colors(6)
        self.assertEqual(len(colors), 6)
        self.assertEqual(len(set(colors)), 6)
        for color in colors:
            self.assertTrue(all(0 <= c <= 255 for c in color))
        self.assertEqual(distinct_colors(0), [])

    def test_draws_on_a_copy(self) -> None:
        img = np.zeros((100, 120, 3), dtype=np.uint8)
        det = Detection(category_id=1, score=0.9, x1=10.0, y1=10.0, x2=60.0, y2=50.0)
        out = draw_detections(img, [det], class_names={1: "Gold Storage"}, cfg=DrawConfig(show_confidence=True))
        self.assertEqual(out.shape, img.shape)
        self.assertEqual(int(img.sum()), 0)
        self.assertGreater(int(out.sum()), 0)
        # Box interior stays untouched.
        self.assertEqual(int(out[42, 35].sum()), 0)

    def test_alpha_blend(self) -> None:
        img = np.zeros((50, 50, 3), dtype=np.uint8)
        det = Detection(category_id=0, score=0.5, x1=5.0, y1=5.0, x2=40.0, y2=40.0)
        solid = draw_detections(img, [det], cfg=DrawConfig(line_width=2))
        blended = draw_detections(img, [det], cfg=DrawConfig(line_width=2, alpha=0.5))
        self.assertLess(int(blended.sum()), int(solid.sum()))

    def test_rejects_bad_shape(self) -> None:
        with self.assertRaises(ValueError):
            draw_detections(np.zeros((10, 10), dtype=np.uint8), [])


if __name__ == "__main__":
    unittest.main()
