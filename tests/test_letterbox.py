import unittest

import numpy as np

from mangrove_kit.errors import InvalidInput
from mangrove_kit.letterbox import image_size, letterbox


def _content_extent(canvas: np.ndarray):
    """Width/height of the non-black region of a letterboxed white image."""
    mask = canvas.max(axis=2) > 0
    return int(mask.any(axis=0).sum()), int(mask.any(axis=1).sum())


class TestLetterbox(unittest.TestCase):
    def test_square_input_is_copied_unchanged(self) -> None:
        rng = np.random.default_rng(0)
        img = rng.integers(0, 256, size=(640, 640, 3), dtype=np.uint8)
        lb = letterbox(img, 640)
        self.assertEqual(lb.scale, 1.0)
        self.assertEqual((lb.pad_x, lb.pad_y), (0, 0))
        self.assertTrue(np.array_equal(lb.canvas, img))
        self.assertFalse(np.shares_memory(lb.canvas, img))

    def test_landscape_1280x720(self) -> None:
        img = np.full((720, 1280, 3), 255, dtype=np.uint8)
        lb = letterbox(img, 640)
        self.assertAlmostEqual(lb.scale, 0.5)
        self.assertEqual((lb.pad_x, lb.pad_y), (0, 140))
        self.assertEqual(lb.canvas.shape, (640, 640, 3))
        self.assertEqual(lb.size, 640)
        self.assertTrue((lb.canvas[:140] == 0).all())
        self.assertTrue((lb.canvas[500:] == 0).all())
        self.assertTrue((lb.canvas[140:500] == 255).all())

    def test_portrait_pads_horizontally(self) -> None:
        img = np.full((800, 400, 3), 200, dtype=np.uint8)
        lb = letterbox(img, 640)
        self.assertAlmostEqual(lb.scale, 0.8)
        self.assertEqual((lb.pad_x, lb.pad_y), (160, 0))
        self.assertEqual(_content_extent(lb.canvas), (320, 640))

    def test_resized_image_never_overflows_canvas(self) -> None:
        for w, h in [(1, 1), (3000, 17), (17, 3000), (641, 639), (333, 777), (1920, 1080), (5, 640)]:
            img = np.full((h, w, 3), 255, dtype=np.uint8)
            lb = letterbox(img, 640)
            new_w, new_h = _content_extent(lb.canvas)
            self.assertLessEqual(new_w, 640, (w, h))
            self.assertLessEqual(new_h, 640, (w, h))
            self.assertEqual(max(new_w, new_h), 640, (w, h))
            self.assertTrue(0 <= lb.pad_x < 640 and 0 <= lb.pad_y < 640, (w, h))
            self.assertEqual(lb.pad_x, (640 - new_w) // 2, (w, h))
            self.assertEqual(lb.pad_y, (640 - new_h) // 2, (w, h))

    def test_rgba_alpha_is_dropped(self) -> None:
        img = np.zeros((100, 200, 4), dtype=np.uint8)
        img[..., :3] = 50
        img[..., 3] = 255
        lb = letterbox(img, 64)
        self.assertEqual(lb.canvas.shape, (64, 64, 3))
        self.assertEqual(int(lb.canvas[32, 32, 0]), 50)

    def test_input_not_modified(self) -> None:
        img = np.arange(30 * 50 * 3, dtype=np.uint32).reshape(30, 50, 3).astype(np.uint8)
        before = img.copy()
        letterbox(img, 64)
        self.assertTrue(np.array_equal(img, before))

    def test_custom_fill_color(self) -> None:
        img = np.zeros((10, 20, 3), dtype=np.uint8)
        lb = letterbox(img, 40, color=(114, 114, 114))
        self.assertEqual(lb.pad_y, 10)
        self.assertTrue((lb.canvas[0] == 114).all())

    def test_zero_size_rejected(self) -> None:
        with self.assertRaises(InvalidInput):
            letterbox(np.zeros((0, 10, 3), dtype=np.uint8), 640)
        with self.assertRaises(InvalidInput):
            letterbox(np.zeros((10, 0, 3), dtype=np.uint8), 640)

    def test_wrong_rank_rejected(self) -> None:
        with self.assertRaises(InvalidInput):
            letterbox(np.zeros((10, 10), dtype=np.uint8), 640)
        with self.assertRaises(InvalidInput):
            image_size(np.zeros((10, 10, 2), dtype=np.uint8))

    def test_invalid_input_is_value_error(self) -> None:
        with self.assertRaises(ValueError):
            letterbox(np.zeros((0, 0, 3), dtype=np.uint8), 640)


if __name__ == "__main__":
    unittest.main()
