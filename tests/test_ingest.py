import tempfile
import unittest
from pathlib import Path

import cv2
import numpy as np

from clashvision.errors import InvalidImage
from clashvision.ingest import iter_image_paths, read_image


class TestReadImage(unittest.TestCase):
    def test_reads_bgr(self) -> None:
        img = np.zeros((12, 20, 3), dtype=np.uint8)
        img[:, :, 0] = 255
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "blue.png"
            self.assertTrue(cv2.imwrite(str(path), img))
            out = read_image(path)
        self.assertEqual(out.shape, (12, 20, 3))
        self.assertEqual(out.dtype, np.uint8)
        self.assertEqual(tuple(int(v) for v in out[0, 0]), (255, 0, 0))

    def test_missing_file(self) -> None:
        with self.assertRaises(InvalidImage) as ctx:
            read_image("/nonexistent/nope.png")
        self.assertEqual(ctx.exception.stage, "read")
        self.assertEqual(ctx.exception.source, "nope.png")

    def test_corrupt_file(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "broken.png"
            path.write_bytes(b"definitely not a png")
            with self.assertRaises(InvalidImage):
                read_image(path)


class TestIterImagePaths(unittest.TestCase):
    def test_filters_and_sorts(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            for name in ["b.PNG", "a.jpg", "notes.txt", "c.webp"]:
                (root / name).write_bytes(b"")
            (root / "sub").mkdir()
            (root / "sub" / "d.png").write_bytes(b"")

            flat = iter_image_paths(root)
            self.assertEqual([p.name for p in flat], ["a.jpg", "b.PNG", "c.webp"])

            nested = iter_image_paths(root, recursive=True)
            self.assertEqual([p.name for p in nested], ["a.jpg", "b.PNG", "c.webp", "d.png"])

            only_jpg = iter_image_paths(root, exts=[".jpg"])
            self.assertEqual([p.name for p in only_jpg], ["a.jpg"])

    def test_not_a_directory(self) -> None:
        with self.assertRaises(FileNotFoundError):
            iter_image_paths("/nonexistent/images")


if __name__ == "__main__":
    unittest.main()
