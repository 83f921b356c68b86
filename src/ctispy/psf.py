"""
Gaussian point spread function shared by the matrix builder and the simulator.

The kernel radius is ceil(truncate * sigma), so with the default truncate of
2.0 a kernel spans 2*ceil(2*sigma) + 1 pixels. The filter is separable and
scipy applies it one axis at a time, which lets the matrix builder express
the blurred image of a single impulse at (r, c) as the outer product of two
1-D responses (see `line_responses`).
"""

import logging

import numpy as np
from scipy import ndimage

logger = logging.getLogger(__name__)


def psf_radius(sigma: float, truncate: float = 2.0) -> int:
    """Kernel radius in pixels."""
    return int(np.ceil(truncate * sigma))


def apply_psf(image: np.ndarray, sigma: float, truncate: float = 2.0, mode: str = "nearest") -> np.ndarray:
    """
    Blur a 2-D image with an isotropic Gaussian PSF.

    Parameters
    ----------
    image : np.ndarray
        Image to blur, shape (gx, gy).
    sigma : float
        Standard deviation of the Gaussian in pixels.
    truncate : float
        Kernel half-width in units of sigma.
    mode : str
        Boundary mode passed to scipy.ndimage.

    Returns
    -------
    np.ndarray
        Blurred image, same shape and dtype as the input.
    """
    return ndimage.gaussian_filter(image, sigma=sigma, mode=mode, radius=psf_radius(sigma, truncate))


def line_responses(n: int, sigma: float, truncate: float = 2.0, mode: str = "nearest") -> np.ndarray:
    """
    1-D Gaussian responses to a unit impulse at every position of an axis.

    Parameters
    ----------
    n : int
        Axis length.
    sigma, truncate, mode
        Same meaning as in `apply_psf`.

    Returns
    -------
    np.ndarray
        Array of shape (n, n); column p is the filtered unit impulse at p.
    """
    return ndimage.gaussian_filter1d(
        np.eye(n, dtype=np.float64), sigma=sigma, axis=0, mode=mode, radius=psf_radius(sigma, truncate)
    )
