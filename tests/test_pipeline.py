import tempfile
import unittest
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import numpy as np

from mangrove_kit.labels import DEFAULT_LABELS
from mangrove_kit.postprocess import CoordConvention, DecoderConfig
from mangrove_kit.runtime import DetectionPipeline, PipelineConfig, find_project_root, load_pipeline, resolve_path


class _FakeModel:
    """Records the input tensor and returns a fixed (1, 8, 8400) output."""

    def __init__(self, output: np.ndarray):
        self.output = output
        self.inputs = []

    def __call__(self, tensor: np.ndarray) -> np.ndarray:
        self.inputs.append(tensor)
        return self.output


def _one_anchor_output(cx, cy, w, h, scores) -> np.ndarray:
    out = np.zeros((1, 8, 8400), dtype=np.float32)
    out[0, 0:4, 42] = (cx, cy, w, h)
    out[0, 4:8, 42] = scores
    return out


class TestDetectionPipeline(unittest.TestCase):
    def test_end_to_end_canvas_pixels(self) -> None:
        model = _FakeModel(_one_anchor_output(320, 320, 100, 100, [0.1, 0.9, 0.05, 0.02]))
        cfg = PipelineConfig(decoder=DecoderConfig(coord_convention=CoordConvention.CANVAS_PIXELS_TO_CANVAS))
        pipe = DetectionPipeline(model, DEFAULT_LABELS, cfg)

        image = np.full((720, 1280, 3), 90, dtype=np.uint8)
        dets = pipe(image)

        self.assertEqual(len(model.inputs), 1)
        tensor = model.inputs[0]
        self.assertEqual(tensor.shape, (1, 640, 640, 3))
        self.assertEqual(tensor.dtype, np.float32)
        self.assertAlmostEqual(float(tensor[0, 0, 0, 0]), 0.0)
        self.assertAlmostEqual(float(tensor[0, 320, 320, 0]), 90 / 255, places=5)

        self.assertEqual(len(dets), 1)
        self.assertEqual(dets[0].label, "Alive Trunk")
        for got, want in zip(dets[0].as_xyxy(), (540.0, 260.0, 740.0, 460.0)):
            self.assertAlmostEqual(got, want, delta=1e-3)

    def test_end_to_end_normalized(self) -> None:
        model = _FakeModel(_one_anchor_output(0.5, 0.5, 0.5, 0.5, [0.0, 0.0, 0.8, 0.0]))
        pipe = DetectionPipeline(model, DEFAULT_LABELS)
        dets = pipe(np.zeros((300, 400, 3), dtype=np.uint8))
        self.assertEqual([d.label for d in dets], ["Dead Rhizophora"])
        for got, want in zip(dets[0].as_xyxy(), (100.0, 75.0, 300.0, 225.0)):
            self.assertAlmostEqual(got, want, delta=1e-3)

    def test_channels_first_tensor(self) -> None:
        model = _FakeModel(np.zeros((1, 8, 8400), dtype=np.float32))
        pipe = DetectionPipeline(model, DEFAULT_LABELS, PipelineConfig(input_size=320, channels_last=False))
        self.assertEqual(pipe(np.zeros((50, 80, 3), dtype=np.uint8)), [])
        self.assertEqual(model.inputs[0].shape, (1, 3, 320, 320))
        self.assertEqual(pipe.input_shape, (1, 3, 320, 320))

    def test_preprocess_keeps_transform(self) -> None:
        pipe = DetectionPipeline(None)
        prep = pipe.preprocess(np.zeros((720, 1280, 3), dtype=np.uint8))
        self.assertEqual(prep.source_size, (1280, 720))
        self.assertEqual((prep.transform.pad_x, prep.transform.pad_y), (0, 140))
        self.assertAlmostEqual(prep.transform.scale, 0.5)

    def test_missing_model_returns_no_detections(self) -> None:
        pipe = DetectionPipeline(None, ())
        self.assertFalse(pipe.model_available)
        with self.assertLogs("mangrove_kit.runtime", level="WARNING") as logs:
            self.assertEqual(pipe(np.zeros((10, 10, 3), dtype=np.uint8)), [])
            self.assertEqual(pipe(np.zeros((10, 10, 3), dtype=np.uint8)), [])
        self.assertEqual(len(logs.records), 1)

    def test_shared_pipeline_across_threads(self) -> None:
        rng = np.random.default_rng(7)
        outputs = []
        for _ in range(6):
            out = np.zeros((1, 8, 8400), dtype=np.float32)
            out[0, 0:2, :] = rng.uniform(0.1, 0.9, size=(2, 8400))
            out[0, 2:4, :] = rng.uniform(0.05, 0.3, size=(2, 8400))
            out[0, 4:8, :] = rng.uniform(0.0, 0.6, size=(4, 8400))
            outputs.append(out)
        images = [np.full((240 + 40 * i, 320, 3), 10 * i, dtype=np.uint8) for i in range(len(outputs))]

        def model(tensor: np.ndarray) -> np.ndarray:
            # The frame's fill value picks which output it gets back.
            return outputs[int(round(float(tensor.max()) * 255)) // 10]

        pipe = DetectionPipeline(model, DEFAULT_LABELS)
        expected = [pipe(image) for image in images]
        self.assertTrue(any(expected))

        jobs = images * 4
        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(pipe, jobs))
        for i, dets in enumerate(results):
            self.assertEqual(dets, expected[i % len(images)])


class TestLoadPipeline(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_unloadable_model_degrades(self) -> None:
        with self.assertLogs("mangrove_kit.runtime", level="ERROR"):
            pipe = load_pipeline(self.root / "missing.onnx", self.root / "labels.txt")
        self.assertFalse(pipe.model_available)
        self.assertEqual(pipe.labels, DEFAULT_LABELS)
        self.assertEqual(pipe(np.zeros((10, 10, 3), dtype=np.uint8)), [])

    def test_no_model_path(self) -> None:
        labels = self.root / "labels.txt"
        labels.write_text("a\nb\n", encoding="utf-8")
        pipe = load_pipeline(None, labels)
        self.assertFalse(pipe.model_available)
        self.assertEqual(pipe.labels, ("a", "b"))

    def test_unknown_extension(self) -> None:
        for name in ("model.bin", "best_float32.tflite"):
            with self.subTest(name=name):
                with self.assertLogs("mangrove_kit.runtime", level="ERROR"):
                    pipe = load_pipeline(self.root / name)
                self.assertFalse(pipe.model_available)
                self.assertEqual(pipe.labels, DEFAULT_LABELS)
                self.assertEqual(pipe(np.zeros((10, 10, 3), dtype=np.uint8)), [])

    def test_explicit_unknown_backend_raises(self) -> None:
        with self.assertRaises(ValueError):
            load_pipeline(self.root / "model.onnx", backend="tflite")

    def test_relative_paths_resolve_against_root(self) -> None:
        (self.root / "models").mkdir()
        (self.root / "models" / "labels.txt").write_text("x\n", encoding="utf-8")
        pipe = load_pipeline(None, "models/labels.txt", root=self.root)
        self.assertEqual(pipe.labels, ("x",))


class TestPaths(unittest.TestCase):
    def test_resolve_path(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            self.assertEqual(resolve_path("a/b.onnx", root=root), root / "a" / "b.onnx")
            absolute = root / "c.onnx"
            self.assertEqual(resolve_path(absolute), absolute)

    def test_find_project_root(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            (root / "pyproject.toml").write_text("", encoding="utf-8")
            nested = root / "a" / "b"
            nested.mkdir(parents=True)
            self.assertEqual(find_project_root(nested), root)


if __name__ == "__main__":
    unittest.main()
