import unittest

import numpy as np

from mangrove_kit.types import Detection
from mangrove_kit.visualize import GREEN, RED, YELLOW, LabelColors, draw_detections, summarize


def _det(label: str, score: float = 0.5, box=(10, 10, 50, 50)) -> Detection:
    x1, y1, x2, y2 = box
    return Detection(x1=x1, y1=y1, x2=x2, y2=y2, score=score, class_id=0, label=label)


class TestLabelColors(unittest.TestCase):
    def test_keyword_mapping(self) -> None:
        colors = LabelColors()
        self.assertEqual(colors.for_label("Alive Rhizophora"), GREEN)
        self.assertEqual(colors.for_label("alive trunk"), GREEN)
        self.assertEqual(colors.for_label("Dead Rhizophora (88.0%)"), RED)
        self.assertEqual(colors.for_label("DEAD TRUNK"), RED)
        self.assertEqual(colors.for_label("Class 7"), YELLOW)

    def test_custom_colors(self) -> None:
        colors = LabelColors(dead_trunk=(1, 2, 3))
        self.assertEqual(colors.for_label("Dead Trunk"), (1, 2, 3))


class TestSummarize(unittest.TestCase):
    def test_empty(self) -> None:
        self.assertEqual(summarize([]), "No detection")
        self.assertEqual(summarize([], empty_text="Scanning..."), "Scanning...")

    def test_joins_display_text(self) -> None:
        dets = [_det("Alive Trunk", 0.912), _det("Dead Trunk", 0.5)]
        self.assertEqual(summarize(dets), "Alive Trunk (91.2%), Dead Trunk (50.0%)")


class TestDrawDetections(unittest.TestCase):
    def test_draws_on_a_copy(self) -> None:
        img = np.zeros((100, 100, 3), dtype=np.uint8)
        out = draw_detections(img, [_det("Dead Trunk")], show_score=False)
        self.assertEqual(out.shape, img.shape)
        self.assertFalse(img.any())
        # Right edge of the outline is solid red.
        self.assertEqual(tuple(int(v) for v in out[40, 50]), RED)
        # Inside the box only the translucent fill shows.
        inside = out[40, 30]
        self.assertGreater(int(inside[0]), 0)
        self.assertLess(int(inside[0]), 255)
        self.assertEqual(int(inside[1]), 0)

    def test_no_detections_returns_equal_copy(self) -> None:
        img = np.full((20, 20, 3), 7, dtype=np.uint8)
        out = draw_detections(img, [])
        self.assertTrue(np.array_equal(out, img))
        self.assertIsNot(out, img)

    def test_rejects_non_rgb(self) -> None:
        with self.assertRaises(ValueError):
            draw_detections(np.zeros((10, 10), dtype=np.uint8), [])


if __name__ == "__main__":
    unittest.main()
