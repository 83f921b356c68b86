"""
Validation and quality assessment for CTIS reconstruction.

This module provides functions to evaluate reconstruction quality through
image-domain residuals and, when the true cube is known (simulation), the
relative error of the reconstructed cube.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
import scipy.sparse as sp

from .exceptions import ConfigurationError
from .utils.helpers import vectorize_cube, vectorize_image

logger = logging.getLogger(__name__)


@dataclass
class ValidationMetrics:
    """
    Container for reconstruction quality metrics.

    Attributes
    ----------
    residual_norm : float
        ||g - H f||_2.
    relative_residual : float
        residual_norm / ||g||_2 (0 when g is all zeros).
    residual_mean : float
        Mean of raw residuals.
    max_abs_residual : float
        Maximum absolute raw residual.
    min_value : float
        Smallest voxel of the reconstruction (>= 0 for EM on non-negative data).
    relative_error : Optional[float]
        ||f - f_true||_2 / ||f_true||_2, only when a reference cube is given.
    """

    residual_norm: float
    relative_residual: float
    residual_mean: float
    max_abs_residual: float
    min_value: float
    relative_error: Optional[float] = None


def compute_residuals(g: np.ndarray, H: sp.spmatrix, f: np.ndarray) -> np.ndarray:
    """
    Compute raw residuals between a CTIS image and the model.

    Residuals are: r = g - H @ f

    Parameters
    ----------
    g : np.ndarray
        CTIS image, shape (gx, gy), or its vector (M,).
    H : sp.spmatrix
        System matrix, shape (M, N).
    f : np.ndarray
        Cube vector (N,) or cube (x, y, z).

    Returns
    -------
    np.ndarray
        Residual vector, shape (M,).
    """
    g_vec = vectorize_image(g)
    f_vec = vectorize_cube(f)
    if H.shape != (g_vec.size, f_vec.size):
        raise ConfigurationError(f"H shape {H.shape} inconsistent with g ({g_vec.size}) and f ({f_vec.size})")
    return g_vec - H @ f_vec


def relative_error(estimate: np.ndarray, reference: np.ndarray) -> float:
    """
    Relative L2 error ||estimate - reference|| / ||reference||.

    Both arguments may be cubes or cube vectors; they are compared in
    column-major voxel order. Returns 0 when both are all zeros and inf when
    only the reference is.
    """
    est = vectorize_cube(estimate).astype(np.float64)
    ref = vectorize_cube(reference).astype(np.float64)
    if est.shape != ref.shape:
        raise ConfigurationError(f"estimate has {est.size} voxels, reference has {ref.size}")

    diff_norm = np.linalg.norm(est - ref)
    ref_norm = np.linalg.norm(ref)
    if ref_norm == 0:
        return 0.0 if diff_norm == 0 else float("inf")
    return float(diff_norm / ref_norm)


def energy(image: np.ndarray) -> float:
    """Total signal (sum of all pixel values) of an image or cube."""
    return float(np.sum(image))


def assess_reconstruction_quality(
    g: np.ndarray,
    H: sp.spmatrix,
    f: np.ndarray,
    reference: Optional[np.ndarray] = None,
) -> ValidationMetrics:
    """
    Comprehensive quality assessment of an EM reconstruction.

    Parameters
    ----------
    g : np.ndarray
        CTIS image used for reconstruction.
    H : sp.spmatrix
        System matrix.
    f : np.ndarray
        Reconstructed cube vector or cube.
    reference : np.ndarray, optional
        True cube, when known.

    Returns
    -------
    ValidationMetrics
        Quality metrics.
    """
    residuals = compute_residuals(g, H, f)
    residual_norm = float(np.linalg.norm(residuals))
    g_norm = float(np.linalg.norm(vectorize_image(g)))

    metrics = ValidationMetrics(
        residual_norm=residual_norm,
        relative_residual=residual_norm / g_norm if g_norm > 0 else 0.0,
        residual_mean=float(np.mean(residuals)) if residuals.size else 0.0,
        max_abs_residual=float(np.max(np.abs(residuals))) if residuals.size else 0.0,
        min_value=float(np.min(f)),
        relative_error=relative_error(f, reference) if reference is not None else None,
    )

    logger.info(
        f"Reconstruction quality: residual={metrics.residual_norm:.3e} "
        f"(relative {metrics.relative_residual:.3e}), min voxel={metrics.min_value:.3e}"
    )
    if metrics.relative_error is not None:
        logger.info(f"  Relative error to reference cube: {metrics.relative_error:.3e}")

    return metrics
