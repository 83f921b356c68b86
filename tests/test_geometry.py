"""
Tests for diffraction-order geometry.
"""

import numpy as np
import pytest

from ctispy.geometry import (
    ORDER_LABELS_5,
    ORDER_LABELS_9,
    band_positions,
    diffraction_offsets,
    image_shape,
    iter_band_geometry,
)


class TestImageShape:
    """Image size follows 3x + 2*shift*z + 2*(b1 + b2 - shift)."""

    @pytest.mark.parametrize(
        "x, y, z, b1, b2, shift, expected",
        [
            (2, 2, 1, 1, 0, 1, (8, 8)),
            (4, 4, 3, 2, 1, 1, (22, 22)),
            (10, 10, 25, 5, 0, 1, (88, 88)),
            (3, 5, 2, 0, 2, 2, (17, 23)),
            (6, 6, 4, 3, 1, 3, (44, 44)),
        ],
    )
    def test_image_shape(self, x, y, z, b1, b2, shift, expected):
        assert image_shape(x, y, z, b1=b1, b2=b2, shift=shift) == expected


class TestBandPositions:
    def test_unit_shift(self):
        assert band_positions(4, 1) == [1, 2, 3, 4]

    def test_larger_shift(self):
        assert band_positions(3, 2) == [1, 3, 5]
        assert len(band_positions(7, 3)) == 7


class TestDiffractionOffsets:
    """Tests for order anchors of a single band."""

    def test_five_order_layout(self):
        gx, gy = image_shape(2, 2, 1, b1=1, b2=0, shift=1)
        orders = diffraction_offsets(2, 2, 1, gx, gy, b1=1, all_orders=False)
        assert orders.labels == ORDER_LABELS_5
        assert orders.n_orders == 5
        # 8x8 image, middle block at (3, 3), first orders 3 pixels away
        np.testing.assert_array_equal(
            orders.anchors,
            [[0, 3], [3, 0], [3, 3], [3, 6], [6, 3]],
        )

    def test_nine_order_layout_has_diagonals(self):
        gx, gy = image_shape(2, 2, 1, b1=1, b2=0, shift=1)
        orders = diffraction_offsets(2, 2, 1, gx, gy, b1=1, all_orders=True)
        assert orders.labels == ORDER_LABELS_9
        assert orders.n_orders == 9
        np.testing.assert_array_equal(orders.anchors[0], [0, 0])
        np.testing.assert_array_equal(orders.anchors[4], [3, 3])
        np.testing.assert_array_equal(orders.anchors[8], [6, 6])
        np.testing.assert_array_equal(orders.rows, orders.anchors[:, 0])
        np.testing.assert_array_equal(orders.cols, orders.anchors[:, 1])

    def test_dispersion_moves_first_orders_outward(self):
        gx, gy = image_shape(4, 4, 3, b1=2, b2=0, shift=1)
        first = diffraction_offsets(4, 4, 1, gx, gy, b1=2)
        last = diffraction_offsets(4, 4, 3, gx, gy, b1=2)
        delta = last.anchors - first.anchors
        # top, left, middle, right, bottom
        np.testing.assert_array_equal(delta, [[-2, 0], [0, -2], [0, 0], [0, 2], [2, 0]])

    def test_five_orders_are_subset_of_nine(self):
        gx, gy = image_shape(3, 3, 2)
        five = diffraction_offsets(3, 3, 2, gx, gy, all_orders=False)
        nine = diffraction_offsets(3, 3, 2, gx, gy, all_orders=True)
        by_label = dict(zip(nine.labels, nine.anchors.tolist()))
        for label, anchor in zip(five.labels, five.anchors.tolist()):
            assert by_label[label] == anchor


class TestIterBandGeometry:
    """Blocks stay inside the image and orders of one band never overlap."""

    @pytest.mark.parametrize(
        "x, y, z, b1, b2, shift, all_orders",
        [
            (2, 2, 1, 1, 0, 1, False),
            (3, 4, 3, 0, 0, 1, True),
            (4, 4, 5, 2, 1, 2, True),
            (5, 3, 2, 1, 3, 3, False),
        ],
    )
    def test_blocks_inside_image_without_overlap(self, x, y, z, b1, b2, shift, all_orders):
        gx, gy = image_shape(x, y, z, b1=b1, b2=b2, shift=shift)
        n_bands = 0
        for band, orders in iter_band_geometry(x, y, z, b1=b1, b2=b2, shift=shift, all_orders=all_orders):
            n_bands += 1
            coverage = np.zeros((gx, gy), dtype=int)
            for row, col in orders.anchors:
                assert row >= 0 and col >= 0
                assert row + x <= gx and col + y <= gy
                coverage[row:row + x, col:col + y] += 1
            assert coverage.max() == 1
        assert n_bands == z

    def test_outermost_band_touches_outer_border(self):
        x, y, z, b1, b2, shift = 3, 3, 4, 1, 2, 2
        gx, _ = image_shape(x, y, z, b1=b1, b2=b2, shift=shift)
        bands = list(iter_band_geometry(x, y, z, b1=b1, b2=b2, shift=shift))
        _, last = bands[-1]
        top_row = last.anchors[last.labels.index("top"), 0]
        bottom_row = last.anchors[last.labels.index("bottom"), 0]
        assert top_row == b2
        assert gx - (bottom_row + x) == b2
