"""
Sparse system matrix construction for the CTIS imaging equation g = H f.

H has one row per CTIS image pixel and one column per cube voxel, both in
column-major order (see `ctispy.utils.helpers`). Column j holds the fraction
of voxel j's energy recorded at each pixel: one entry per diffraction order
without PSF, or the blurred impulse pattern of all orders with PSF.

The matrix is built in COO format (triplets appended band by band) and
converted once to CSR for fast matrix-vector products.

Memory
------
Without PSF, H stores n_orders * x * y * z entries. With PSF every impulse
spreads over a (2r + 1)^2 window (r = kernel radius), so H stores up to
n_orders * (2r + 1)^2 * x * y * z entries, and construction time grows in the
same proportion. Use `estimate_system_matrix_bytes` before building large
PSF-enabled operators.
"""

import logging
from typing import List, Optional

import numpy as np
import scipy.sparse as sp
from tqdm import tqdm

from .config import CTISConfig, resolve_config
from .geometry import image_shape, iter_band_geometry
from .psf import line_responses, psf_radius
from .utils.helpers import format_file_size

logger = logging.getLogger(__name__)

# CSR storage per entry: float64 value + int32 column index
_BYTES_PER_ENTRY = 12


def estimate_system_matrix_nnz(x: int, y: int, z: int, config: Optional[CTISConfig] = None) -> int:
    """
    Upper bound on the number of stored entries of H.

    Parameters
    ----------
    x, y, z : int
        Cube dimensions.
    config : CTISConfig, optional
        Geometry and optics. Defaults to `CTISConfig()`.

    Returns
    -------
    int
        n_orders * x * y * z without PSF, times the squared kernel width with PSF.
    """
    config = resolve_config(config, {})
    per_voxel = config.n_orders
    if config.sigma_psf is not None:
        window = 2 * psf_radius(config.sigma_psf, config.psf_truncate) + 1
        per_voxel *= window * window
    return per_voxel * x * y * z


def estimate_system_matrix_bytes(x: int, y: int, z: int, config: Optional[CTISConfig] = None) -> int:
    """Approximate CSR memory footprint of H in bytes."""
    config = resolve_config(config, {})
    gx, gy = image_shape(x, y, z, b1=config.b1, b2=config.b2, shift=config.shift)
    nnz = estimate_system_matrix_nnz(x, y, z, config)
    return nnz * _BYTES_PER_ENTRY + (gx * gy + 1) * 4


def _voxel_grid(x: int, y: int):
    """Row and column of each voxel of one band, in column-major voxel order."""
    rows = np.tile(np.arange(x, dtype=np.int64), y)
    cols = np.repeat(np.arange(y, dtype=np.int64), x)
    return rows, cols


def _window(centers: np.ndarray, radius: int, n: int):
    """
    Indices of the (2r + 1)-wide window around each center, clipped to [0, n).

    Returns the clipped indices and a validity mask, both shaped
    (len(centers), 2r + 1).
    """
    offsets = np.arange(-radius, radius + 1, dtype=np.int64)
    idx = centers[:, None] + offsets[None, :]
    valid = (idx >= 0) & (idx < n)
    return np.clip(idx, 0, n - 1), valid


def build_system_matrix(x: int, y: int, z: int, config: Optional[CTISConfig] = None, **overrides) -> sp.csr_matrix:
    """
    Build the CTIS system matrix H.

    Parameters
    ----------
    x, y, z : int
        Cube rows, columns and spectral bands.
    config : CTISConfig, optional
        Geometry and optical parameters (b1, b2, shift, all_orders,
        diff_sens, illum, sigma_psf). Defaults to `CTISConfig()`.
    **overrides
        Configuration fields overriding `config`, e.g. ``b1=5, all_orders=True``.

    Returns
    -------
    sp.csr_matrix
        System matrix, shape (gx * gy, x * y * z).

    Raises
    ------
    ConfigurationError
        If dimensions or optical parameters are inconsistent.

    Notes
    -----
    Each band's scalar factor per order is illum[band] * diff_sens[order, band].
    With PSF, the blurred image of an impulse at (r, c) is the outer product
    of the 1-D Gaussian responses at r and c, so the blurred column is
    assembled from precomputed line responses instead of filtering a full
    canvas per voxel. Only the populated orders (5 or 9) are blurred.
    """
    config = resolve_config(config, overrides)
    diff_sens, illum = config.validate_for(x, y, z)

    gx, gy = image_shape(x, y, z, b1=config.b1, b2=config.b2, shift=config.shift)
    n_pixels = gx * gy
    n_voxels = x * y * z
    use_psf = config.sigma_psf is not None

    logger.info(
        f"Building system matrix H: {n_pixels} pixels ({gx}x{gy}) x {n_voxels} voxels ({x}x{y}x{z}), "
        f"{config.n_orders} orders, PSF={'sigma=' + str(config.sigma_psf) if use_psf else 'off'}"
    )

    estimated_bytes = estimate_system_matrix_bytes(x, y, z, config)
    if estimated_bytes > config.memory_warning_bytes:
        logger.warning(
            f"H is expected to need about {format_file_size(estimated_bytes)} "
            f"(limit {format_file_size(config.memory_warning_bytes)}); construction may exhaust memory"
        )

    if use_psf:
        radius = psf_radius(config.sigma_psf, config.psf_truncate)
        row_response = line_responses(gx, config.sigma_psf, config.psf_truncate, config.psf_mode)
        col_response = line_responses(gy, config.sigma_psf, config.psf_truncate, config.psf_mode)

    voxel_rows, voxel_cols = _voxel_grid(x, y)
    voxels_per_band = x * y

    # Lists for COO sparse matrix construction
    rows: List[np.ndarray] = []
    cols: List[np.ndarray] = []
    data: List[np.ndarray] = []

    band_iter = iter_band_geometry(
        x, y, z, b1=config.b1, b2=config.b2, shift=config.shift, all_orders=config.all_orders
    )
    for band, orders in tqdm(band_iter, total=z, desc="Building H", unit="band", disable=not config.show_progress):
        factors = illum[band] * diff_sens[:, band]
        band_columns = band * voxels_per_band + np.arange(voxels_per_band, dtype=np.int64)

        for (anchor_row, anchor_col), factor in zip(orders.anchors, factors):
            if factor == 0:
                continue
            pixel_rows = anchor_row + voxel_rows
            pixel_cols = anchor_col + voxel_cols

            if not use_psf:
                rows.append(pixel_rows + pixel_cols * gx)
                cols.append(band_columns)
                data.append(np.full(voxels_per_band, factor, dtype=np.float64))
                continue

            win_rows, valid_rows = _window(pixel_rows, radius, gx)
            win_cols, valid_cols = _window(pixel_cols, radius, gy)
            # (voxel, window) weights of the separable blur
            w_rows = row_response[win_rows, pixel_rows[:, None]] * valid_rows
            w_cols = col_response[win_cols, pixel_cols[:, None]] * valid_cols

            values = factor * w_rows[:, :, None] * w_cols[:, None, :]
            flat_pixels = win_rows[:, :, None] + win_cols[:, None, :] * gx
            columns = np.broadcast_to(band_columns[:, None, None], values.shape)

            keep = values != 0
            rows.append(flat_pixels[keep])
            cols.append(columns[keep])
            data.append(values[keep])

        logger.debug(f"Completion percentage = {round(100 * (band + 1) / z)} %")

    if data:
        rows_arr = np.concatenate(rows)
        cols_arr = np.concatenate(cols)
        data_arr = np.concatenate(data)
    else:
        rows_arr = cols_arr = np.empty(0, dtype=np.int64)
        data_arr = np.empty(0, dtype=np.float64)

    # Duplicate (row, column) pairs are summed, as overlapping blur windows should be
    H_coo = sp.coo_matrix((data_arr, (rows_arr, cols_arr)), shape=(n_pixels, n_voxels), dtype=np.float64)
    H_csr = H_coo.tocsr()

    n_nonzero = H_csr.nnz
    sparsity = 1.0 - (n_nonzero / (n_pixels * n_voxels))
    logger.info(
        f"H matrix: {n_nonzero:,} non-zero entries ({sparsity:.2%} sparse, "
        f"{n_nonzero / n_voxels:.1f} entries/column avg)"
    )
    logger.info("Completed construction of H.")

    return H_csr
