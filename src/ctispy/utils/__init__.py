"""
Utility helpers for ctispy.
"""

from .helpers import (
    cube_from_vector,
    format_file_size,
    image_from_vector,
    setup_logging,
    vectorize_cube,
    vectorize_image,
)

__all__ = [
    "setup_logging",
    "format_file_size",
    "vectorize_cube",
    "cube_from_vector",
    "vectorize_image",
    "image_from_vector",
]
