import unittest

import numpy as np

from yolo_decode.errors import ConfigError
from yolo_decode.letterbox import adjust_boxes, compute_letterbox, letterbox_image, pad_to_square
from yolo_decode.types import Detection


class TestComputeLetterbox(unittest.TestCase):
    def test_landscape(self) -> None:
        t = compute_letterbox(640, 480, 416, 416)
        self.assertAlmostEqual(t.scale, 640 / 416)
        self.assertEqual((t.x_offset, t.y_offset), (0, 80))
        self.assertEqual(t.square_dim, 640)

    def test_portrait(self) -> None:
        t = compute_letterbox(480, 640, 416, 416)
        self.assertEqual((t.x_offset, t.y_offset), (80, 0))

    def test_odd_difference_floors(self) -> None:
        t = compute_letterbox(101, 100, 416, 416)
        self.assertEqual((t.x_offset, t.y_offset), (0, 0))
        t = compute_letterbox(100, 103, 416, 416)
        self.assertEqual((t.x_offset, t.y_offset), (1, 0))

    def test_square_image_at_model_size_is_identity(self) -> None:
        t = compute_letterbox(416, 416, 416, 416)
        self.assertTrue(t.is_identity)

    def test_square_image_keeps_resize_scale(self) -> None:
        t = compute_letterbox(832, 832, 416, 416)
        self.assertEqual((t.x_offset, t.y_offset), (0, 0))
        self.assertAlmostEqual(t.scale, 2.0)

    def test_non_square_model_input(self) -> None:
        with self.assertRaises(ConfigError):
            compute_letterbox(640, 480, 416, 320)


class TestPadToSquare(unittest.TestCase):
    def test_pads_shorter_axis_centered(self) -> None:
        img = np.arange(1, 9, dtype=np.uint8).reshape(2, 4, 1)
        t = compute_letterbox(4, 2, 416, 416)
        out = pad_to_square(img, t)
        self.assertEqual(out.shape, (4, 4, 1))
        self.assertTrue(np.array_equal(out[1:3], img))
        self.assertEqual(int(out[0].sum()), 0)
        self.assertEqual(int(out[3].sum()), 0)

    def test_pads_portrait_image(self) -> None:
        img = np.full((4, 2, 3), 7, dtype=np.uint8)
        out = pad_to_square(img, compute_letterbox(2, 4, 416, 416))
        self.assertEqual(out.shape, (4, 4, 3))
        self.assertTrue(np.all(out[:, 1:3] == 7))
        self.assertTrue(np.all(out[:, 0] == 0))

    def test_square_image_is_not_copied(self) -> None:
        img = np.zeros((5, 5, 3), dtype=np.uint8)
        self.assertIs(pad_to_square(img, compute_letterbox(5, 5, 416, 416)), img)

    def test_letterbox_image_resizes_to_model_input(self) -> None:
        img = np.full((480, 640, 3), 200, dtype=np.uint8)
        out, t = letterbox_image(img, (416, 416))
        self.assertEqual(out.shape, (416, 416, 3))
        self.assertEqual(t.y_offset, 80)
        # centre row is image, top row is padding
        self.assertEqual(int(out[208, 208, 0]), 200)
        self.assertEqual(int(out[0, 208, 0]), 0)


class TestAdjustBoxes(unittest.TestCase):
    def test_identity_is_noop(self) -> None:
        det = Detection(x=10.5, y=20.25, width=30.0, height=40.0, confidence=0.8, class_index=2)
        out = adjust_boxes([det], compute_letterbox(416, 416, 416, 416))
        self.assertEqual(out, [det])

    def test_letterboxed_box_maps_to_original(self) -> None:
        t = compute_letterbox(640, 480, 416, 416)
        # image top edge sits at 80 / scale = 52 in model space
        det = Detection(x=0.0, y=52.0, width=416.0, height=256.0, confidence=0.9, class_index=0)
        (out,) = adjust_boxes([det], t)
        self.assertAlmostEqual(out.x, 0.0)
        self.assertAlmostEqual(out.y, 0.0, places=6)
        self.assertAlmostEqual(out.width, 640.0)
        self.assertAlmostEqual(out.height, 256.0 * 640 / 416)
        self.assertAlmostEqual(out.height, 393.846, places=3)
        self.assertEqual(out.confidence, 0.9)
        self.assertEqual(out.class_index, 0)

    def test_input_is_not_modified_and_order_kept(self) -> None:
        t = compute_letterbox(640, 480, 416, 416)
        dets = [Detection(float(i), float(i), 1.0, 1.0, 0.5, 0) for i in range(5)]
        out = adjust_boxes(dets, t)
        self.assertEqual([d.x for d in dets], [0.0, 1.0, 2.0, 3.0, 4.0])
        self.assertEqual([d.x for d in out], [i * t.scale for i in range(5)])


if __name__ == "__main__":
    unittest.main()
