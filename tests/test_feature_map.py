import unittest

import numpy as np

from yolo_decode.errors import ShapeMismatchError, UnsupportedFormatError
from yolo_decode.feature_map import ActivationPolicy, FeatureMapLayout, RawFeatureMap, offset_strategy


class TestOffsets(unittest.TestCase):
    # 2x2 grid, 2 anchors, 1 class -> 6 values per anchor, 12 channels

    def test_channel_minor_offsets(self) -> None:
        offsets = offset_strategy(FeatureMapLayout.CHANNEL_MINOR, 2, 2, 12, 1)
        o = offsets(1, 0, 1)
        self.assertEqual((o.x, o.y, o.w, o.h, o.objectness, o.scores), (30, 31, 32, 33, 34, 35))
        self.assertEqual(o.score_step, 1)

    def test_channel_major_offsets(self) -> None:
        offsets = offset_strategy(FeatureMapLayout.CHANNEL_MAJOR, 2, 2, 12, 1)
        o = offsets(1, 0, 1)
        self.assertEqual((o.x, o.y, o.w, o.h, o.objectness, o.scores), (26, 30, 34, 38, 42, 46))
        self.assertEqual(o.score_step, 4)

    def test_known_buffer_contents_both_layouts(self) -> None:
        # value at (h, w, anchor, k) encodes its own position: 1000*h + 100*w + 10*anchor + k
        height, width, anchors, num_classes = 3, 4, 2, 2
        entry = num_classes + 5
        nhwc = np.zeros((1, height, width, anchors * entry), dtype=np.float32)
        for h in range(height):
            for w in range(width):
                for a in range(anchors):
                    for k in range(entry):
                        nhwc[0, h, w, a * entry + k] = 1000 * h + 100 * w + 10 * a + k
        nchw = np.ascontiguousarray(nhwc.transpose(0, 3, 1, 2))

        for array, layout in ((nhwc, FeatureMapLayout.CHANNEL_MINOR), (nchw, FeatureMapLayout.CHANNEL_MAJOR)):
            fm = RawFeatureMap.from_array(array, layout)
            offsets = fm.offsets(num_classes)
            for h in range(height):
                for w in range(width):
                    for a in range(anchors):
                        o = offsets(h, w, a)
                        base = 1000 * h + 100 * w + 10 * a
                        self.assertEqual(fm.data[o.x], base)
                        self.assertEqual(fm.data[o.y], base + 1)
                        self.assertEqual(fm.data[o.w], base + 2)
                        self.assertEqual(fm.data[o.h], base + 3)
                        self.assertEqual(fm.data[o.objectness], base + 4)
                        for c in range(num_classes):
                            self.assertEqual(fm.data[o.scores + c * o.score_step], base + 5 + c)

    def test_offsets_broadcast_over_arrays(self) -> None:
        offsets = offset_strategy(FeatureMapLayout.CHANNEL_MAJOR, 2, 2, 12, 1)
        o = offsets(np.array([0, 1]), np.array([1, 0]), np.array([0, 1]))
        self.assertEqual(o.x.tolist(), [1, 26])

    def test_tiled_layout_has_no_strategy(self) -> None:
        with self.assertRaises(UnsupportedFormatError):
            offset_strategy(FeatureMapLayout.TILED, 2, 2, 12, 1)


class TestRawFeatureMap(unittest.TestCase):
    def test_from_array_shapes(self) -> None:
        fm = RawFeatureMap.from_array(np.zeros((1, 13, 13, 24), dtype=np.float32), FeatureMapLayout.CHANNEL_MINOR)
        self.assertEqual((fm.height, fm.width, fm.channel), (13, 13, 24))
        fm = RawFeatureMap.from_array(np.zeros((1, 24, 26, 26), dtype=np.float32), "NCHW")
        self.assertEqual((fm.height, fm.width, fm.channel), (26, 26, 24))
        self.assertIs(fm.layout, FeatureMapLayout.CHANNEL_MAJOR)

    def test_data_is_read_only(self) -> None:
        fm = RawFeatureMap.from_array(np.zeros((1, 2, 2, 6), dtype=np.float32), FeatureMapLayout.CHANNEL_MINOR)
        with self.assertRaises(ValueError):
            fm.data[0] = 1.0

    def test_rejects_non_float32(self) -> None:
        with self.assertRaises(UnsupportedFormatError):
            RawFeatureMap.from_array(np.zeros((1, 2, 2, 6), dtype=np.float64), FeatureMapLayout.CHANNEL_MINOR)
        with self.assertRaises(UnsupportedFormatError):
            RawFeatureMap.from_array(np.zeros((1, 2, 2, 6), dtype=np.uint8), FeatureMapLayout.CHANNEL_MINOR)

    def test_rejects_tiled_layout(self) -> None:
        with self.assertRaises(UnsupportedFormatError):
            RawFeatureMap(np.zeros(24, dtype=np.float32), 2, 2, 6, FeatureMapLayout.TILED)

    def test_rejects_batch_above_one(self) -> None:
        with self.assertRaises(UnsupportedFormatError):
            RawFeatureMap.from_array(np.zeros((2, 2, 2, 6), dtype=np.float32), FeatureMapLayout.CHANNEL_MINOR)

    def test_rejects_wrong_buffer_size(self) -> None:
        with self.assertRaises(ShapeMismatchError):
            RawFeatureMap(np.zeros(23, dtype=np.float32), 2, 2, 6, FeatureMapLayout.CHANNEL_MINOR)

    def test_check_shape(self) -> None:
        fm = RawFeatureMap.from_array(np.zeros((1, 2, 2, 24), dtype=np.float32), FeatureMapLayout.CHANNEL_MINOR)
        fm.check_shape(3, 3)
        with self.assertRaises(ShapeMismatchError):
            fm.check_shape(3, 4)


class TestActivationPolicy(unittest.TestCase):
    def test_policy_from_anchor_count(self) -> None:
        self.assertIs(ActivationPolicy.for_anchor_count(5), ActivationPolicy.SOFTMAX)
        self.assertIs(ActivationPolicy.for_anchor_count(3), ActivationPolicy.SIGMOID)


if __name__ == "__main__":
    unittest.main()
