"""
ctispy: forward model and EM reconstruction for computed tomography imaging
spectrometers (CTIS).

The imaging equation is g = H f + n, where f is a vectorized hyperspectral
cube, H the sparse system matrix and g the vectorized CTIS image.

Main Functions
--------------
build_system_matrix : Sparse system matrix H for a cube shape and configuration
simulate_ctis_image : Direct CTIS image simulation with optional PSF and noise
reconstruct : EM reconstruction of a cube vector from H and g

Examples
--------
>>> import numpy as np
>>> from ctispy import CTISConfig, build_system_matrix, simulate_ctis_image, reconstruct
>>> config = CTISConfig(b1=5, all_orders=True)
>>> cube = np.ones((10, 10, 4))
>>> H = build_system_matrix(*cube.shape, config)
>>> g = simulate_ctis_image(cube, config)
>>> f = reconstruct(H, g, 10)
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("ctispy")
except PackageNotFoundError:
    # Package is not installed, use fallback (for development)
    __version__ = "0.1.0"  # Sync with pyproject.toml manually for development

from .config import CTISConfig, export_default_ctis_config
from .exceptions import ConfigurationError
from .geometry import DiffractionOrderSet, diffraction_offsets, image_shape
from .matrices import build_system_matrix, estimate_system_matrix_bytes, estimate_system_matrix_nnz
from .reconstruction import CTISReconstructor, CubeReconstructionResult, reconstruct_cube
from .simulator import simulate_ctis_image, simulate_with_matrix
from .solver import EMResult, em_reconstruct, reconstruct, safe_divide
from .utils.helpers import cube_from_vector, image_from_vector, vectorize_cube, vectorize_image
from .validation import ValidationMetrics, assess_reconstruction_quality, relative_error

__all__ = [
    "__version__",
    # Configuration
    "CTISConfig",
    "export_default_ctis_config",
    "ConfigurationError",
    # Geometry
    "DiffractionOrderSet",
    "diffraction_offsets",
    "image_shape",
    # Forward model
    "build_system_matrix",
    "estimate_system_matrix_nnz",
    "estimate_system_matrix_bytes",
    "simulate_ctis_image",
    "simulate_with_matrix",
    # Reconstruction
    "EMResult",
    "em_reconstruct",
    "reconstruct",
    "safe_divide",
    "CTISReconstructor",
    "CubeReconstructionResult",
    "reconstruct_cube",
    # Validation
    "ValidationMetrics",
    "assess_reconstruction_quality",
    "relative_error",
    # Vectorization
    "vectorize_cube",
    "cube_from_vector",
    "vectorize_image",
    "image_from_vector",
]
