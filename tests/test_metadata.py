import tempfile
import unittest
from pathlib import Path

from clashvision.metadata import DEFAULT_CLASS_NAMES, class_label, load_class_names


class TestLoadClassNames(unittest.TestCase):
    def _write(self, td: str, text: str) -> Path:
        path = Path(td) / "metadata.yaml"
        path.write_text(text, encoding="utf-8")
        return path

    def test_mapping_form(self) -> None:
        text = "description: storages\nnames:\n  0: 'Elixir Storage'\n  1: \"Gold Storage\"\nimgsz:\n- 640\n- 640\n"
        with tempfile.TemporaryDirectory() as td:
            names = load_class_names(self._write(td, text))
        self.assertEqual(names, {0: "Elixir Storage", 1: "Gold Storage"})

    def test_list_form(self) -> None:
        text = "names:\n  - person\n  - bicycle\nstride: 32\n"
        with tempfile.TemporaryDirectory() as td:
            names = load_class_names(self._write(td, text))
        self.assertEqual(names, {0: "person", 1: "bicycle"})

    def test_no_names_block(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            self.assertEqual(load_class_names(self._write(td, "stride: 32\n")), {})


class TestClassLabel(unittest.TestCase):
    def test_labels(self) -> None:
        self.assertEqual(class_label(1), DEFAULT_CLASS_NAMES[1])
        self.assertEqual(class_label(7), "Unknown")
        self.assertEqual(class_label(None), "object")
        self.assertEqual(class_label(0, {0: "cannon"}), "cannon")


if __name__ == "__main__":
    unittest.main()
