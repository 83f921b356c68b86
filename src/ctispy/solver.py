"""
Expectation maximization (EM) reconstruction of a hyperspectral cube.

The multiplicative update (Richardson-Lucy form) is

    f_{i+1} = f_i / hsum * H^T (g / (H f_i))

with hsum the column sums of H. Divisions go through `safe_divide`, which
turns every NaN or infinity into zero: pixels with no estimated signal and
voxels with no sensitivity are routine, not errors. For non-negative H and g
every iterate stays non-negative. There is no convergence test and no
regularization; the iteration count is fixed.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

import numpy as np
import scipy.sparse as sp
from tqdm import tqdm

from .config import VALID_INITIALIZERS
from .exceptions import ConfigurationError
from .utils.helpers import vectorize_image

logger = logging.getLogger(__name__)


@dataclass
class EMResult:
    """
    Result container for an EM reconstruction.

    Attributes
    ----------
    f : np.ndarray
        Reconstructed cube vector, shape (x * y * z,), column-major.
    iterations : int
        Number of EM iterations performed.
    init : str
        Starting point used ('backprojection' or 'ones').
    residual_norms : Optional[np.ndarray]
        ||g - H f_i||_2 of the estimate entering each iteration, shape
        (iterations,). None unless residual tracking was requested.
    solver_time : float
        Wall-clock time in seconds.
    """

    f: np.ndarray
    iterations: int
    init: str
    residual_norms: Optional[np.ndarray]
    solver_time: float


def safe_divide(numerator: np.ndarray, denominator: np.ndarray) -> np.ndarray:
    """
    Elementwise division with NaN and infinite results replaced by zero.

    Parameters
    ----------
    numerator, denominator : np.ndarray
        Arrays of broadcastable shapes.

    Returns
    -------
    np.ndarray
        numerator / denominator, with 0/0 and x/0 mapped to 0.
    """
    with np.errstate(divide="ignore", invalid="ignore"):
        quotient = np.true_divide(numerator, denominator)
    quotient[~np.isfinite(quotient)] = 0.0
    return quotient


def em_reconstruct(
    H: sp.spmatrix,
    g: np.ndarray,
    iterations: int,
    init: str = "backprojection",
    show_progress: bool = False,
    track_residuals: bool = False,
) -> EMResult:
    """
    Reconstruct a cube vector from a CTIS image with EM.

    Parameters
    ----------
    H : sp.spmatrix
        System matrix, shape (M, N).
    g : np.ndarray
        CTIS image, shape (gx, gy) with gx * gy = M, or an image vector (M,).
    iterations : int
        Number of EM iterations (>= 0).
    init : str
        'backprojection' starts from H^T g, 'ones' from an all-ones vector.
    show_progress : bool
        Show a tqdm progress bar.
    track_residuals : bool
        Record ||g - H f_i|| for every iteration.

    Returns
    -------
    EMResult
        Reconstructed vector and diagnostics.

    Raises
    ------
    ConfigurationError
        If H and g disagree in size, or iterations/init are invalid.
    """
    if not sp.issparse(H):
        H = sp.csr_matrix(H)
    else:
        H = H.tocsr()

    g = vectorize_image(g).astype(np.float64, copy=False)
    M, N = H.shape

    if g.shape != (M,):
        raise ConfigurationError(f"g has {g.size} pixels, inconsistent with H shape {H.shape}")
    if isinstance(iterations, bool) or not isinstance(iterations, (int, np.integer)) or iterations < 0:
        raise ConfigurationError(f"iterations must be a non-negative integer, got {iterations!r}")
    if init not in VALID_INITIALIZERS:
        raise ConfigurationError(f"init must be one of {VALID_INITIALIZERS}, got '{init}'")

    logger.info(f"Starting EM reconstruction: M={M} pixels, N={N} voxels, {iterations} iterations, init={init}")
    start_time = time.time()

    Ht = H.T.tocsr()
    if init == "backprojection":
        fk = Ht @ g
    else:
        fk = np.ones(N, dtype=np.float64)

    # Sensitivity of each voxel over the whole detector
    hsum = Ht @ np.ones(M, dtype=np.float64)

    residual_norms = np.zeros(iterations, dtype=np.float64) if track_residuals else None

    for i in tqdm(range(iterations), desc="EM", unit="iter", disable=not show_progress):
        g_est = H @ fk
        if track_residuals:
            residual_norms[i] = np.linalg.norm(g - g_est)
        g_ratio = safe_divide(g, g_est)
        fk_norm = safe_divide(fk, hsum)
        fk = fk_norm * (Ht @ g_ratio)
        logger.debug(f"EM iteration {i + 1} out of {iterations}")

    solver_time = time.time() - start_time
    logger.info(f"EM reconstruction finished in {solver_time:.2f}s")

    return EMResult(
        f=fk,
        iterations=int(iterations),
        init=init,
        residual_norms=residual_norms,
        solver_time=solver_time,
    )


def reconstruct(H: sp.spmatrix, g: np.ndarray, iterations: int) -> np.ndarray:
    """
    Run `iterations` EM steps from the back-projection H^T g.

    Returns the reconstructed cube vector, shape (H.shape[1],); reshape it
    with `ctispy.utils.cube_from_vector`.
    """
    return em_reconstruct(H, g, iterations).f
