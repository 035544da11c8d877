import json
import tempfile
import unittest
from pathlib import Path

from clashvision.config import SessionConfig, load_session_config, session_config_from_dict


class TestSessionConfig(unittest.TestCase):
    def test_defaults(self) -> None:
        cfg = SessionConfig()
        self.assertEqual(cfg.model_type, "yolov8")
        self.assertEqual(cfg.input_size, (640, 640))
        self.assertEqual(cfg.conf_threshold, 0.25)
        self.assertEqual(cfg.iou_threshold, 0.45)
        self.assertTrue(cfg.use_nms)
        self.assertEqual(cfg.workers, 1)
        self.assertTrue(cfg.encoder_config().normalization.is_identity)
        self.assertFalse(cfg.nms_config().class_agnostic)

    def test_with_overrides_skips_none(self) -> None:
        cfg = SessionConfig(conf_threshold=0.4).with_overrides(conf_threshold=None, iou_threshold=0.6, workers=3)
        self.assertEqual(cfg.conf_threshold, 0.4)
        self.assertEqual(cfg.iou_threshold, 0.6)
        self.assertEqual(cfg.workers, 3)

    def test_validation(self) -> None:
        bad = [
            dict(model_type="yolov5"),
            dict(input_size=(16, 640)),
            dict(conf_threshold=1.5),
            dict(iou_threshold=0.0),
            dict(max_detections=0),
            dict(num_classes=0),
            dict(pad_color=(0, 0, 300)),
            dict(workers=0),
            dict(std=(1.0, 0.0, 1.0)),
        ]
        for kwargs in bad:
            with self.subTest(kwargs=kwargs):
                with self.assertRaises(ValueError):
                    SessionConfig(**kwargs)


class TestSessionConfigFromDict(unittest.TestCase):
    def test_full_payload(self) -> None:
        cfg = session_config_from_dict(
            {
                "model_type": "yolov10",
                "input_size": [512, 384],
                "conf_threshold": 0.5,
                "iou_threshold": 0.6,
                "use_nms": False,
                "class_agnostic_nms": True,
                "max_detections": 10,
                "num_classes": 2,
                "pad_color": [0, 0, 0],
                "mean": [0.485, 0.456, 0.406],
                "std": [0.229, 0.224, 0.225],
                "workers": 4,
                "fail_fast": True,
            }
        )
        self.assertEqual(cfg.model_type, "yolov10")
        self.assertEqual(cfg.input_size, (512, 384))
        self.assertFalse(cfg.use_nms)
        self.assertTrue(cfg.class_agnostic_nms)
        self.assertEqual(cfg.pad_color, (0, 0, 0))
        self.assertEqual(cfg.num_classes, 2)
        self.assertFalse(cfg.encoder_config().normalization.is_identity)

    def test_square_input_size(self) -> None:
        self.assertEqual(session_config_from_dict({"input_size": 320}).input_size, (320, 320))

    def test_rejects_unknown_keys_and_bad_types(self) -> None:
        with self.assertRaises(ValueError):
            session_config_from_dict({"conf": 0.5})
        with self.assertRaises(ValueError):
            session_config_from_dict({"conf_threshold": "0.5"})
        with self.assertRaises(ValueError):
            session_config_from_dict({"use_nms": 1})
        with self.assertRaises(ValueError):
            session_config_from_dict({"workers": True})
        with self.assertRaises(ValueError):
            session_config_from_dict({"mean": [0.1, 0.2]})


class TestLoadSessionConfig(unittest.TestCase):
    def test_load(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "session.json"
            path.write_text(json.dumps({"conf_threshold": 0.3}), encoding="utf-8")
            self.assertEqual(load_session_config(path).conf_threshold, 0.3)

    def test_missing_file(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_session_config(Path("/nonexistent/session.json"))

    def test_invalid_json(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "session.json"
            path.write_text("{not json", encoding="utf-8")
            with self.assertRaises(ValueError):
                load_session_config(path)
            path.write_text("[1, 2]", encoding="utf-8")
            with self.assertRaises(ValueError):
                load_session_config(path)


if __name__ == "__main__":
    unittest.main()
