"""
Diffraction-order geometry of the CTIS image.

The CTIS image holds one undispersed zeroth-order copy of the scene in the
middle, surrounded by first-order copies (4 along the axes, plus 4 diagonal
ones in the 9-order layout). Inside a first-order spot, band k is displaced
by (k - 1) pixels away from the centre, where k runs over the expanded
spectral axis 1, 1 + shift, 1 + 2*shift, ... so consecutive bands sit `shift`
pixels apart. This produces the dispersed streak of a real first-order spot.

Image size (rows, columns) for a cube of shape (x, y, z):

    gx = 3*x + 2*shift*z + 2*(b1 + b2 - shift)
    gy = 3*y + 2*shift*z + 2*(b1 + b2 - shift)

With this size the last band of the outermost orders touches the border `b2`
exactly, and orders never overlap inside one band for b1 >= 0.

All anchors returned here are 0-based (row, column) top-left corners of an
x-by-y block. The builder and the simulator both go through
`iter_band_geometry`, so H and the direct simulation agree on geometry.
"""

import logging
from dataclasses import dataclass
from typing import Iterator, List, Tuple

import numpy as np

logger = logging.getLogger(__name__)

# Row order of the sensitivity matrix for each layout
ORDER_LABELS_9 = (
    "top-left",
    "top",
    "top-right",
    "left",
    "middle",
    "right",
    "bottom-left",
    "bottom",
    "bottom-right",
)
ORDER_LABELS_5 = ("top", "left", "middle", "right", "bottom")

# (row direction, column direction) of each order relative to the middle spot
ORDER_DIRECTIONS = {
    "top-left": (-1, -1),
    "top": (-1, 0),
    "top-right": (-1, 1),
    "left": (0, -1),
    "middle": (0, 0),
    "right": (0, 1),
    "bottom-left": (1, -1),
    "bottom": (1, 0),
    "bottom-right": (1, 1),
}


@dataclass(frozen=True)
class DiffractionOrderSet:
    """
    Anchors of all diffraction orders for one spectral band.

    Attributes
    ----------
    labels : Tuple[str, ...]
        Order names, in the row order of the sensitivity matrix.
    anchors : np.ndarray
        Integer array of shape (n_orders, 2) with the 0-based (row, column)
        top-left corner of each order's x-by-y block.
    """

    labels: Tuple[str, ...]
    anchors: np.ndarray

    @property
    def n_orders(self) -> int:
        return len(self.labels)

    @property
    def rows(self) -> np.ndarray:
        return self.anchors[:, 0]

    @property
    def cols(self) -> np.ndarray:
        return self.anchors[:, 1]


def n_orders(all_orders: bool) -> int:
    """Number of diffraction orders in the 9- or 5-order layout."""
    return 9 if all_orders else 5


def order_labels(all_orders: bool) -> Tuple[str, ...]:
    """Order names for the selected layout."""
    return ORDER_LABELS_9 if all_orders else ORDER_LABELS_5


def image_shape(x: int, y: int, z: int, b1: int = 1, b2: int = 0, shift: int = 1) -> Tuple[int, int]:
    """
    Size (gx, gy) of the CTIS image for an (x, y, z) cube.

    Parameters
    ----------
    x, y, z : int
        Cube rows, columns and spectral bands.
    b1 : int
        Border between zeroth and first orders.
    b2 : int
        Border between first orders and the image edge.
    shift : int
        Pixel shift between neighbouring bands.

    Returns
    -------
    Tuple[int, int]
        Number of image rows and columns.
    """
    expanded_band_count = shift * z
    gx = 3 * x + 2 * expanded_band_count + 2 * (b1 + b2 - shift)
    gy = 3 * y + 2 * expanded_band_count + 2 * (b1 + b2 - shift)
    return gx, gy


def band_positions(z: int, shift: int = 1) -> List[int]:
    """
    Positions k (1-based) of the z bands on the expanded spectral axis.

    The expanded axis has shift*z samples; band b sits at k = 1 + b*shift.
    """
    expanded_band_count = shift * z
    return list(range(1, expanded_band_count + 1, shift))


def diffraction_offsets(
    x: int, y: int, k: int, gx: int, gy: int, b1: int = 1, all_orders: bool = False
) -> DiffractionOrderSet:
    """
    Anchors of every diffraction order for the band at expanded position k.

    Parameters
    ----------
    x, y : int
        Spatial size of the cube.
    k : int
        1-based position of the band on the expanded spectral axis.
    gx, gy : int
        CTIS image size, from `image_shape`.
    b1 : int
        Border between zeroth and first orders.
    all_orders : bool
        9-order layout if True, else 5-order layout.

    Returns
    -------
    DiffractionOrderSet
        Labels and (row, column) anchors of each order.
    """
    center_row = (gx - x) // 2
    center_col = (gy - y) // 2
    dispersion = k - 1

    labels = order_labels(all_orders)
    anchors = np.empty((len(labels), 2), dtype=np.int64)
    for n, label in enumerate(labels):
        row_dir, col_dir = ORDER_DIRECTIONS[label]
        anchors[n, 0] = center_row + row_dir * (x + b1 + dispersion)
        anchors[n, 1] = center_col + col_dir * (y + b1 + dispersion)

    return DiffractionOrderSet(labels=labels, anchors=anchors)


def iter_band_geometry(
    x: int,
    y: int,
    z: int,
    b1: int = 1,
    b2: int = 0,
    shift: int = 1,
    all_orders: bool = False,
) -> Iterator[Tuple[int, DiffractionOrderSet]]:
    """
    Yield (band index, order anchors) for every band of an (x, y, z) cube.

    Band indices are 0-based positions in the original cube; the anchors use
    the band's position on the expanded spectral axis.
    """
    gx, gy = image_shape(x, y, z, b1=b1, b2=b2, shift=shift)
    for band, k in enumerate(band_positions(z, shift)):
        orders = diffraction_offsets(x, y, k, gx, gy, b1=b1, all_orders=all_orders)
        logger.debug(f"Band {band} (k={k}): anchors {orders.anchors.tolist()}")
        yield band, orders
