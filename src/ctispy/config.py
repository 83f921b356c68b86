"""
Configuration dataclass for CTIS simulation and reconstruction.

A single `CTISConfig` enumerates every optional parameter shared by the
system-matrix builder, the forward simulator and the EM reconstruction,
together with its default value.
"""

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import numpy as np
import yaml

from .exceptions import ConfigurationError
from .geometry import n_orders

VALID_INITIALIZERS = ["backprojection", "ones"]
VALID_PSF_MODES = ["nearest", "reflect", "mirror", "constant"]


def _is_integer(value: Any) -> bool:
    return isinstance(value, (int, np.integer)) and not isinstance(value, (bool, np.bool_))


@dataclass
class CTISConfig:
    """
    Configuration for the CTIS forward model and EM reconstruction.

    Parameters
    ----------
    b1 : int
        Border between the zeroth order and the first orders, in pixels. Default: 1.
    b2 : int
        Border between the first orders and the outer edge of the CTIS image,
        in pixels. Default: 0.
    shift : int
        Pixel shift between neighbouring spectral bands inside a first-order
        spot. Default: 1.
    all_orders : bool
        Use the 9-order layout (True) or the 5-order layout without the
        diagonal spots (False). Default: False.
    diff_sens : Optional[np.ndarray]
        Diffraction sensitivity, shape (n_orders, z). Rows follow the order
        labels of `ctispy.geometry`. None means all ones.
    illum : Optional[np.ndarray]
        Illumination spectrum, shape (z,) or (1, z). None means all ones.
    sigma_psf : Optional[float]
        Standard deviation of the Gaussian PSF in pixels. None disables blur.
    psf_truncate : float
        Kernel half-width in units of `sigma_psf`; the kernel radius is
        ceil(psf_truncate * sigma_psf). Default: 2.0.
    psf_mode : str
        Boundary handling of the Gaussian filter, passed to scipy.ndimage.
        Default: 'nearest' (replicate edge pixels).
    noise_std : Optional[float]
        Standard deviation of zero-mean additive Gaussian sensor noise.
        None disables noise.
    seed : Optional[int]
        Seed for the noise generator. None draws fresh entropy.
    iterations : int
        Number of EM iterations. Default: 10.
    init : str
        EM starting point: 'backprojection' (H^T g) or 'ones'.
        Default: 'backprojection'.
    show_progress : bool
        Show tqdm progress bars for matrix construction and EM. Default: False.
    memory_warning_bytes : int
        Log a warning when the estimated size of H exceeds this many bytes.
        Default: 1 GiB.

    Examples
    --------
    >>> config = CTISConfig(b1=5, all_orders=True, sigma_psf=1.0)
    >>> config.to_yaml_file("ctis_config.yaml")
    >>> loaded = CTISConfig.from_yaml_file("ctis_config.yaml")
    """

    # Geometry
    b1: int = 1
    b2: int = 0
    shift: int = 1
    all_orders: bool = False

    # Optical parameters
    diff_sens: Optional[np.ndarray] = None
    illum: Optional[np.ndarray] = None
    sigma_psf: Optional[float] = None
    psf_truncate: float = 2.0
    psf_mode: str = "nearest"

    # Sensor noise
    noise_std: Optional[float] = None
    seed: Optional[int] = None

    # EM reconstruction
    iterations: int = 10
    init: str = "backprojection"

    # Runtime
    show_progress: bool = False
    memory_warning_bytes: int = 1 << 30

    def __post_init__(self):
        """Validate configuration parameters after initialization."""
        for name in ("b1", "b2", "shift", "iterations"):
            value = getattr(self, name)
            if not _is_integer(value):
                raise ConfigurationError(f"{name} must be an integer, got {value!r}")
            setattr(self, name, int(value))

        if self.b1 < 0:
            raise ConfigurationError(f"b1 must be non-negative, got {self.b1}")
        if self.b2 < 0:
            raise ConfigurationError(f"b2 must be non-negative, got {self.b2}")
        if self.shift < 1:
            raise ConfigurationError(f"shift must be >= 1, got {self.shift}")
        if self.iterations < 0:
            raise ConfigurationError(f"iterations must be non-negative, got {self.iterations}")

        self.all_orders = bool(self.all_orders)

        if self.sigma_psf is not None:
            if not np.isfinite(self.sigma_psf) or self.sigma_psf <= 0:
                raise ConfigurationError(f"sigma_psf must be positive if specified, got {self.sigma_psf}")
            self.sigma_psf = float(self.sigma_psf)
        if self.psf_truncate <= 0:
            raise ConfigurationError(f"psf_truncate must be positive, got {self.psf_truncate}")
        if self.psf_mode not in VALID_PSF_MODES:
            raise ConfigurationError(f"psf_mode must be one of {VALID_PSF_MODES}, got '{self.psf_mode}'")

        if self.noise_std is not None:
            if not np.isfinite(self.noise_std) or self.noise_std < 0:
                raise ConfigurationError(f"noise_std must be non-negative if specified, got {self.noise_std}")
            self.noise_std = float(self.noise_std)

        if self.init not in VALID_INITIALIZERS:
            raise ConfigurationError(f"init must be one of {VALID_INITIALIZERS}, got '{self.init}'")
        if self.memory_warning_bytes <= 0:
            raise ConfigurationError(f"memory_warning_bytes must be positive, got {self.memory_warning_bytes}")

        if self.diff_sens is not None:
            self.diff_sens = np.asarray(self.diff_sens, dtype=np.float64)
        if self.illum is not None:
            self.illum = np.asarray(self.illum, dtype=np.float64)

    @property
    def n_orders(self) -> int:
        """Number of diffraction orders in the selected layout."""
        return n_orders(self.all_orders)

    def validate_for(self, x: int, y: int, z: int) -> Tuple[np.ndarray, np.ndarray]:
        """
        Check the configuration against cube dimensions and resolve optics.

        Parameters
        ----------
        x, y, z : int
            Cube rows, columns and spectral bands.

        Returns
        -------
        diff_sens : np.ndarray
            Sensitivity matrix, shape (n_orders, z).
        illum : np.ndarray
            Illumination spectrum, shape (z,).

        Raises
        ------
        ConfigurationError
            If a dimension is not a positive integer or an optical parameter
            does not match the order layout or band count.
        """
        for name, value in (("x", x), ("y", y), ("z", z)):
            if not _is_integer(value):
                raise ConfigurationError(f"{name} must be an integer, got {value!r}")
            if value < 1:
                raise ConfigurationError(f"{name} must be >= 1, got {value}")

        if self.diff_sens is None:
            diff_sens = np.ones((self.n_orders, z), dtype=np.float64)
        else:
            diff_sens = self.diff_sens
            if diff_sens.shape != (self.n_orders, z):
                raise ConfigurationError(
                    f"diff_sens must have shape ({self.n_orders}, {z}) for all_orders={self.all_orders}, "
                    f"got {diff_sens.shape}"
                )
            if not np.all(np.isfinite(diff_sens)):
                raise ConfigurationError("diff_sens contains non-finite values")

        if self.illum is None:
            illum = np.ones(z, dtype=np.float64)
        else:
            illum = self.illum
            if illum.ndim > 2 or (illum.ndim == 2 and 1 not in illum.shape) or illum.size != z:
                raise ConfigurationError(f"illum must have shape ({z},) or (1, {z}), got {illum.shape}")
            illum = illum.ravel()
            if not np.all(np.isfinite(illum)):
                raise ConfigurationError("illum contains non-finite values")

        return diff_sens, illum

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert configuration to dictionary for serialization.

        Arrays are converted to nested lists so the result is YAML-safe.

        Returns
        -------
        Dict[str, Any]
            Dictionary representation of configuration.
        """
        data = asdict(self)
        for key in ("diff_sens", "illum"):
            if data[key] is not None:
                data[key] = np.asarray(data[key]).tolist()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CTISConfig":
        """
        Create configuration from dictionary.

        Parameters
        ----------
        data : Dict[str, Any]
            Dictionary with configuration parameters. Unknown keys are ignored.

        Returns
        -------
        CTISConfig
            Configuration instance.
        """
        valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
        filtered_data = {k: v for k, v in data.items() if k in valid_fields}
        return cls(**filtered_data)

    def to_yaml_file(self, filepath: Path) -> Path:
        """
        Save configuration to YAML file.

        Parameters
        ----------
        filepath : Path
            Output YAML file path.

        Returns
        -------
        Path
            Path to written file.
        """
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        with open(filepath, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

        return filepath

    @classmethod
    def from_yaml_file(cls, filepath: Path) -> "CTISConfig":
        """
        Load configuration from YAML file.

        Parameters
        ----------
        filepath : Path
            Input YAML file path.

        Returns
        -------
        CTISConfig
            Configuration instance.
        """
        filepath = Path(filepath)

        if not filepath.exists():
            raise FileNotFoundError(f"Config file not found: {filepath}")

        with open(filepath, "r") as f:
            data = yaml.safe_load(f)

        return cls.from_dict(data or {})

    def copy_with_overrides(self, **kwargs) -> "CTISConfig":
        """
        Create a copy with specified parameters overridden.

        Examples
        --------
        >>> config = CTISConfig(b1=5)
        >>> blurred = config.copy_with_overrides(sigma_psf=1.0, noise_std=0.1)
        """
        valid_fields = {f.name for f in self.__dataclass_fields__.values()}
        unknown = sorted(set(kwargs) - valid_fields)
        if unknown:
            raise ConfigurationError(f"Unknown configuration parameters: {unknown}")

        current_dict = self.to_dict()
        current_dict.update(kwargs)
        return self.from_dict(current_dict)


def resolve_config(config: Optional[CTISConfig], overrides: Dict[str, Any]) -> CTISConfig:
    """Return `config` (or the defaults) with keyword overrides applied."""
    if config is None:
        config = CTISConfig()
    if overrides:
        config = config.copy_with_overrides(**overrides)
    return config


def export_default_ctis_config(output_dir: Path, filename: str = "ctis_config.yaml") -> Path:
    """
    Export default CTIS configuration template to YAML file.

    Parameters
    ----------
    output_dir : Path
        Directory to save configuration file.
    filename : str
        Output filename. Default: 'ctis_config.yaml'.

    Returns
    -------
    Path
        Path to exported configuration file.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    config = CTISConfig()
    filepath = output_dir / filename
    config.to_yaml_file(filepath)

    return filepath
