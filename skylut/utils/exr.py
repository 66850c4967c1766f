"""
Skylut EXR Utilities - Lookup table export for inspection in image tools.

Channel naming convention:
- 2D tables: R, G, B (and A for 4 channel tables)
- 3D tables: one layer per r slice, <slice>.R, <slice>.G, ...
"""

import os
from typing import Dict, List

import numpy as np

# OpenEXR is an optional extra; writing or reading raises without it
try:
    import OpenEXR
    import Imath
    HAS_OPENEXR = True
except ImportError:
    HAS_OPENEXR = False

COMPONENTS = ('R', 'G', 'B', 'A')


def _require_openexr() -> None:
    if not HAS_OPENEXR:
        raise RuntimeError("OpenEXR module not available. "
                           "Install with: pip install OpenEXR")


def channel_name(component: str, layer: int, layer_count: int) -> str:
    """Channel name for a component of one layer."""
    if layer_count == 1:
        return component
    return f"{layer}.{component}"


class TableEXRWriter:
    """
    Writes a 2D or 3D lookup table to a single EXR file.
    """

    def __init__(self, width: int, height: int, half_precision: bool = False):
        """
        Initialize EXR writer.

        Args:
            width: Table width in texels
            height: Table height in texels
            half_precision: Use 16-bit float (True) or 32-bit float (False)
        """
        self.width = width
        self.height = height
        self.half_precision = half_precision
        self.layers: List[np.ndarray] = []

    def add_layer(self, data: np.ndarray) -> None:
        """
        Add a layer (one r slice for 3D tables).

        Args:
            data: Texels as (height, width, channels) array with 1 to 4 channels
        """
        data = np.asarray(data, dtype=np.float32)
        if data.ndim != 3 or data.shape[:2] != (self.height, self.width):
            raise ValueError(f"Layer data must be shape ({self.height}, {self.width}, C), "
                             f"got {data.shape}")
        if not 1 <= data.shape[2] <= len(COMPONENTS):
            raise ValueError(f"Layer data must have 1 to 4 channels, got {data.shape[2]}")
        if self.layers and data.shape[2] != self.layers[0].shape[2]:
            raise ValueError("All layers must have the same number of channels")
        self.layers.append(data)

    def write(self, filepath: str) -> None:
        """
        Write the EXR file.

        Args:
            filepath: Output file path
        """
        _require_openexr()

        if not self.layers:
            raise ValueError("No layers added to EXR")

        if self.half_precision:
            pixel_type = Imath.PixelType(Imath.PixelType.HALF)
            dtype = np.float16
        else:
            pixel_type = Imath.PixelType(Imath.PixelType.FLOAT)
            dtype = np.float32

        header = OpenEXR.Header(self.width, self.height)
        channels = {}
        channel_data = {}

        layer_count = len(self.layers)
        for layer, data in enumerate(self.layers):
            for i in range(data.shape[2]):
                name = channel_name(COMPONENTS[i], layer, layer_count)
                channels[name] = Imath.Channel(pixel_type)
                channel_data[name] = np.ascontiguousarray(data[:, :, i].astype(dtype)).tobytes()

        header['channels'] = channels

        exr_file = OpenEXR.OutputFile(filepath, header)
        exr_file.writePixels(channel_data)
        exr_file.close()


def write_table_exr(filepath: str, table: np.ndarray, half_precision: bool = False) -> None:
    """
    Write a (H, W, C) or (D, H, W, C) table.

    Args:
        filepath: Output file path
        table: Lookup table
        half_precision: Use half float precision
    """
    table = np.asarray(table)
    if table.ndim == 3:
        table = table[np.newaxis]
    if table.ndim != 4:
        raise ValueError(f"Expected a 2D or 3D table with channels, got shape {table.shape}")

    _, height, width, _ = table.shape
    writer = TableEXRWriter(width, height, half_precision)
    for layer in table:
        writer.add_layer(layer)
    writer.write(filepath)


def read_table_exr(filepath: str) -> np.ndarray:
    """
    Read a table written by write_table_exr.

    Args:
        filepath: Path to EXR file

    Returns:
        (H, W, C) array for single layer files, (D, H, W, C) otherwise
    """
    _require_openexr()

    if not os.path.exists(filepath):
        raise FileNotFoundError(f"EXR file not found: {filepath}")

    exr_file = OpenEXR.InputFile(filepath)
    header = exr_file.header()

    dw = header['dataWindow']
    width = dw.max.x - dw.min.x + 1
    height = dw.max.y - dw.min.y + 1

    # Group channels by layer
    layers: Dict[int, Dict[str, str]] = {}
    for name in header['channels']:
        if '.' in name:
            layer, component = name.split('.', 1)
            layers.setdefault(int(layer), {})[component] = name
        else:
            layers.setdefault(-1, {})[name] = name

    pt = Imath.PixelType(Imath.PixelType.FLOAT)
    slices = []
    for layer in sorted(layers):
        components = layers[layer]
        planes = [
            np.frombuffer(exr_file.channel(components[c], pt), dtype=np.float32).reshape(height, width)
            for c in COMPONENTS if c in components
        ]
        slices.append(np.stack(planes, axis=2))

    exr_file.close()

    if -1 in layers:
        return slices[0]
    return np.stack(slices, axis=0)
