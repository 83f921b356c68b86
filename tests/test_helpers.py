"""
Tests for utility helpers.
"""

import logging

import numpy as np

from ctispy.utils import (
    cube_from_vector,
    format_file_size,
    image_from_vector,
    setup_logging,
    vectorize_cube,
    vectorize_image,
)


class TestVectorization:
    """Column-major ordering shared by H, cubes and images."""

    def test_cube_voxel_index(self):
        cube = np.arange(2 * 3 * 4, dtype=float).reshape(2, 3, 4)
        f = vectorize_cube(cube)
        i, j, band = 1, 2, 3
        assert f[i + j * 2 + band * 2 * 3] == cube[i, j, band]
        np.testing.assert_array_equal(cube_from_vector(f, cube.shape), cube)

    def test_image_pixel_index(self):
        image = np.arange(12, dtype=float).reshape(3, 4)
        g = vectorize_image(image)
        assert g[2 + 1 * 3] == image[2, 1]
        np.testing.assert_array_equal(image_from_vector(g, image.shape), image)


class TestFormatting:
    def test_format_file_size(self):
        assert format_file_size(512) == "512.0 B"
        assert format_file_size(2048) == "2.0 KB"
        assert format_file_size(3 * 1024 ** 3) == "3.0 GB"

    def test_setup_logging_accepts_lowercase_level(self):
        # basicConfig leaves existing root handlers untouched
        setup_logging("debug")
        assert logging.getLevelName("DEBUG") == logging.DEBUG
