"""
Helper utility functions for ctispy.

Cubes and images are vectorized in column-major (Fortran) order: for a cube of
shape (x, y, z) the voxel (i, j, band) sits at index i + j*x + band*x*y, and
for an image of shape (gx, gy) the pixel (r, c) sits at index r + c*gx. The
system matrix uses the same ordering for its columns and rows.
"""

import logging
from typing import Tuple

import numpy as np

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """
    Set up logging configuration.

    Parameters
    ----------
    level : str
        Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def vectorize_cube(cube: np.ndarray) -> np.ndarray:
    """Flatten an (x, y, z) cube into the column order of the system matrix."""
    return np.asarray(cube).ravel(order="F")


def cube_from_vector(f: np.ndarray, shape: Tuple[int, int, int]) -> np.ndarray:
    """Reshape a cube vector back to (x, y, z)."""
    return np.asarray(f).reshape(shape, order="F")


def vectorize_image(image: np.ndarray) -> np.ndarray:
    """Flatten a (gx, gy) CTIS image into the row order of the system matrix."""
    return np.asarray(image).ravel(order="F")


def image_from_vector(g: np.ndarray, shape: Tuple[int, int]) -> np.ndarray:
    """Reshape an image vector back to (gx, gy)."""
    return np.asarray(g).reshape(shape, order="F")


def format_file_size(size_bytes: float) -> str:
    """
    Format file size in human-readable format.

    Parameters
    ----------
    size_bytes : float
        Size in bytes

    Returns
    -------
    str
        Formatted size string
    """
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size_bytes < 1024.0:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.1f} PB"
