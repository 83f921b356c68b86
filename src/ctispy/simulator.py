"""
Direct CTIS image simulation from a hyperspectral cube.

`simulate_ctis_image` applies the same optical model as the system matrix
without building it: every band is scaled per order and added into its
block of the CTIS canvas, then the PSF and sensor noise are applied. With
PSF and noise disabled the result equals ``H @ vectorize_cube(cube)``
reshaped to (gx, gy).
"""

import logging
from typing import Optional

import numpy as np
import scipy.sparse as sp

from .config import CTISConfig, resolve_config
from .exceptions import ConfigurationError
from .geometry import image_shape, iter_band_geometry
from .psf import apply_psf
from .utils.helpers import image_from_vector, vectorize_cube

logger = logging.getLogger(__name__)


def _as_cube(cube: np.ndarray) -> np.ndarray:
    cube = np.asarray(cube)
    if cube.ndim == 2:
        # A single spectral band
        cube = cube[:, :, None]
    if cube.ndim != 3:
        raise ConfigurationError(f"cube must be a 3-D (x, y, z) array, got shape {cube.shape}")
    if cube.size == 0:
        raise ConfigurationError(f"cube must not be empty, got shape {cube.shape}")
    if not np.issubdtype(cube.dtype, np.floating):
        cube = cube.astype(np.float64)
    if not np.all(np.isfinite(cube)):
        raise ConfigurationError("cube contains non-finite values")
    return cube


def simulate_ctis_image(
    cube: np.ndarray,
    config: Optional[CTISConfig] = None,
    rng: Optional[np.random.Generator] = None,
    **overrides,
) -> np.ndarray:
    """
    Simulate a CTIS image g = H f + n from a hyperspectral cube.

    Parameters
    ----------
    cube : np.ndarray
        Hyperspectral cube, shape (x, y, z). A 2-D array is treated as a
        single band.
    config : CTISConfig, optional
        Geometry, optics, PSF and noise settings. Defaults to `CTISConfig()`.
    rng : np.random.Generator, optional
        Noise generator. If None, one is created from `config.seed`.
    **overrides
        Configuration fields overriding `config`.

    Returns
    -------
    np.ndarray
        Simulated CTIS image, shape (gx, gy).

    Raises
    ------
    ConfigurationError
        If the cube or the optical parameters are inconsistent.

    Notes
    -----
    When noise is enabled, zero-mean Gaussian noise is added and negative
    pixels are set to zero, modelling a non-negative detector response.
    This is not saturation handling; there is no upper clip.
    """
    config = resolve_config(config, overrides)
    cube = _as_cube(cube)
    x, y, z = cube.shape
    diff_sens, illum = config.validate_for(x, y, z)

    gx, gy = image_shape(x, y, z, b1=config.b1, b2=config.b2, shift=config.shift)
    logger.info(f"Simulating CTIS image {gx}x{gy} from cube {x}x{y}x{z} ({config.n_orders} orders)")

    g = np.zeros((gx, gy), dtype=cube.dtype)

    band_iter = iter_band_geometry(
        x, y, z, b1=config.b1, b2=config.b2, shift=config.shift, all_orders=config.all_orders
    )
    for band, orders in band_iter:
        factors = illum[band] * diff_sens[:, band]
        for (row, col), factor in zip(orders.anchors, factors):
            g[row:row + x, col:col + y] += factor * cube[:, :, band]

    if config.sigma_psf is not None:
        g = apply_psf(g, config.sigma_psf, truncate=config.psf_truncate, mode=config.psf_mode)

    if config.noise_std is not None:
        if rng is None:
            rng = np.random.default_rng(config.seed)
        g = g + rng.normal(0.0, config.noise_std, size=g.shape)
        g = np.maximum(g, 0)
        logger.debug(f"Added Gaussian noise with std {config.noise_std}")

    return g


def simulate_with_matrix(H: sp.spmatrix, cube: np.ndarray, image_size) -> np.ndarray:
    """
    Noiseless CTIS image from an existing system matrix.

    Parameters
    ----------
    H : sp.spmatrix
        System matrix, shape (gx * gy, x * y * z).
    cube : np.ndarray
        Hyperspectral cube, shape (x, y, z).
    image_size : Tuple[int, int]
        (gx, gy) of the CTIS image.

    Returns
    -------
    np.ndarray
        CTIS image, shape (gx, gy).
    """
    cube = _as_cube(cube)
    f = vectorize_cube(cube)
    gx, gy = image_size
    if H.shape != (gx * gy, f.size):
        raise ConfigurationError(
            f"H shape {H.shape} inconsistent with image {image_size} and cube {cube.shape}"
        )
    return image_from_vector(H @ f, (gx, gy))
