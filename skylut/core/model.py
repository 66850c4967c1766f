"""
Skylut Atmosphere Model - Precomputation driver and table storage.

This module handles:
- Running the table builders in dependency order, one scattering order at a time
- Model initialization and state management
- Saving and loading the finished tables
"""

import json
import logging
import os
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from .backend import ComputeBackend, get_backend
from .constants import DEFAULT_SCATTERING_ORDERS
from .parameters import AtmosphereParameters
from .precompute import (
    precompute_transmittance,
    precompute_direct_irradiance,
    precompute_single_scattering,
    precompute_scattering_density,
    precompute_indirect_irradiance,
    precompute_multiple_scattering,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]


@dataclass
class PrecomputedTextures:
    """Container for precomputed lookup tables."""
    transmittance: np.ndarray  # Shape: (r, mu, 3)
    scattering: np.ndarray     # Shape: (r, mu, nu * mu_s, 4), rayleigh rgb + mie red
    irradiance: np.ndarray     # Shape: (r, mu_s, 3), indirect only

    def freeze(self) -> None:
        """Make every table read-only."""
        for table in (self.transmittance, self.scattering, self.irradiance):
            table.flags.writeable = False


class AtmosphereModel:
    """
    Main atmosphere model class.

    Handles precomputation of lookup tables and provides shader uniforms.
    """

    def __init__(
        self,
        params: Optional[AtmosphereParameters] = None,
        backend: Optional[ComputeBackend] = None,
    ):
        """
        Initialize the atmosphere model.

        Args:
            params: Atmosphere parameters. Uses Earth defaults if None.
            backend: Work dispatcher. Uses the global backend if None.
        """
        self.params = params or AtmosphereParameters.earth_default()
        self.backend = backend
        self._textures: Optional[PrecomputedTextures] = None

    @property
    def is_initialized(self) -> bool:
        """Check if the tables have been precomputed or loaded."""
        return self._textures is not None

    @property
    def textures(self) -> PrecomputedTextures:
        if self._textures is None:
            raise RuntimeError("Model not initialized. Call init() first.")
        return self._textures

    def init(
        self,
        num_scattering_orders: int = DEFAULT_SCATTERING_ORDERS,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        """
        Precompute the atmosphere lookup tables.

        Args:
            num_scattering_orders: Number of scattering orders to compute (default 4)
            progress_callback: Optional callback(progress, message) for progress updates
        """
        if num_scattering_orders < 1:
            raise ValueError(f"num_scattering_orders must be >= 1, got {num_scattering_orders}")
        self.params.validate()
        p = self.params
        backend = self.backend or get_backend()

        def report(progress: float, message: str) -> None:
            logger.info(message)
            if progress_callback:
                progress_callback(progress, message)

        report(0.0, f"Initializing atmosphere model ({backend.name})...")

        transmittance = np.zeros(p.transmittance_shape, dtype=np.float32)
        scattering = np.zeros(p.scattering_shape, dtype=np.float32)
        irradiance = np.zeros(p.irradiance_shape, dtype=np.float32)

        delta_irradiance = np.zeros(p.irradiance_shape, dtype=np.float32)
        delta_rayleigh = np.zeros(p.scattering_shape[:3] + (3,), dtype=np.float32)
        delta_mie = np.zeros_like(delta_rayleigh)
        delta_scattering_density = np.zeros_like(delta_rayleigh)

        report(0.05, "Computing transmittance...")
        precompute_transmittance(p, transmittance, backend)

        report(0.1, "Computing direct irradiance...")
        precompute_direct_irradiance(p, transmittance, delta_irradiance, backend)

        report(0.15, "Computing single scattering...")
        precompute_single_scattering(p, transmittance, delta_rayleigh, delta_mie, scattering, backend)

        # Multiple scattering of order k - 1 is read while order k is written.
        # The single rayleigh delta is only read by order 2, so its storage
        # becomes the second half of the pair afterwards.
        previous = delta_rayleigh
        current = np.zeros_like(delta_rayleigh)

        for order in range(2, num_scattering_orders + 1):
            base = 0.2 + 0.8 * (order - 2) / (num_scattering_orders - 1)
            step = 0.8 / (num_scattering_orders - 1)

            report(base, f"Computing scattering density for order {order}...")
            precompute_scattering_density(
                p, transmittance, delta_rayleigh, delta_mie, previous,
                delta_irradiance, order, delta_scattering_density, backend,
            )

            report(base + step / 3, f"Computing indirect irradiance for order {order - 1}...")
            precompute_indirect_irradiance(
                p, delta_rayleigh, delta_mie, previous, order - 1,
                delta_irradiance, irradiance, backend,
            )

            report(base + 2 * step / 3, f"Computing multiple scattering for order {order}...")
            precompute_multiple_scattering(
                p, transmittance, delta_scattering_density, current, scattering, backend,
            )

            previous, current = current, previous

        textures = PrecomputedTextures(
            transmittance=transmittance,
            scattering=scattering,
            irradiance=irradiance,
        )
        textures.freeze()
        self._textures = textures
        report(1.0, "Precomputation complete.")

    def get_shader_uniforms(self) -> dict:
        """
        Get dictionary of uniform values for shaders.

        Returns:
            Dictionary with uniform names and values
        """
        if not self.is_initialized:
            raise RuntimeError("Model not initialized. Call init() first.")

        p = self.params
        return {
            'solar_irradiance': p.solar_irradiance,
            'sun_angular_radius': p.sun_angular_radius,
            'bottom_radius': p.bottom_radius,
            'top_radius': p.top_radius,
            'rayleigh_scattering': p.rayleigh_scattering,
            'mie_scattering': p.mie_scattering,
            'mie_extinction': p.mie_extinction,
            'mie_phase_function_g': p.mie_phase_function_g,
            'absorption_extinction': p.absorption_extinction,
            'ground_albedo': p.ground_albedo,
            'mu_s_min': p.mu_s_min,
            'transmittance_texture_size': p.transmittance_shape[1::-1],
            'scattering_texture_size': p.scattering_extent,
            'irradiance_texture_size': p.irradiance_shape[1::-1],
        }

    def save_textures(self, filepath: str) -> None:
        """Save precomputed tables and the parameters that produced them (NumPy format)."""
        textures = self.textures
        np.savez_compressed(
            filepath,
            transmittance=textures.transmittance,
            scattering=textures.scattering,
            irradiance=textures.irradiance,
            parameters=np.array(json.dumps(self.params.to_dict())),
        )
        logger.info("Saved tables to %s", filepath)

    def load_textures(self, filepath: str) -> None:
        """
        Load precomputed tables from a file written by save_textures.

        Parameters stored in the file replace the model's parameters.

        Raises:
            ValueError: if a table does not match the parameter table sizes
        """
        with np.load(filepath) as data:
            if 'parameters' in data:
                self.params = AtmosphereParameters.from_dict(json.loads(str(data['parameters'])))
            textures = PrecomputedTextures(
                transmittance=np.array(data['transmittance'], dtype=np.float32),
                scattering=np.array(data['scattering'], dtype=np.float32),
                irradiance=np.array(data['irradiance'], dtype=np.float32),
            )

        expected = {
            'transmittance': self.params.transmittance_shape,
            'scattering': self.params.scattering_shape,
            'irradiance': self.params.irradiance_shape,
        }
        for name, shape in expected.items():
            actual = getattr(textures, name).shape
            if actual != shape:
                raise ValueError(f"{name} table has shape {actual}, parameters expect {shape}")

        textures.freeze()
        self._textures = textures
        logger.info("Loaded tables from %s", filepath)

    def save_textures_exr(self, output_dir: str) -> None:
        """
        Save precomputed tables as EXR files.

        Creates transmittance.exr, irradiance.exr and scattering.exr, with one
        layer per r slice in the scattering file.

        Args:
            output_dir: Directory to save EXR files
        """
        from ..utils.exr import write_table_exr

        textures = self.textures
        os.makedirs(output_dir, exist_ok=True)
        for name in ('transmittance', 'irradiance', 'scattering'):
            filepath = os.path.join(output_dir, f"{name}.exr")
            write_table_exr(filepath, getattr(textures, name))
            logger.info("Saved EXR: %s", filepath)
