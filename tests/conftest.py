"""
Shared fixtures: reduced table sizes so that full builds take seconds.
"""

import numpy as np
import pytest

from skylut.core.backend import ComputeBackend
from skylut.core.model import AtmosphereModel
from skylut.core.parameters import AtmosphereParameters
from skylut.core.precompute import precompute_transmittance

SMALL_TABLE_SIZES = {
    'transmittance_texture_mu_size': 32,
    'transmittance_texture_r_size': 8,
    'scattering_texture_r_size': 4,
    'scattering_texture_mu_size': 8,
    'scattering_texture_mu_s_size': 4,
    'scattering_texture_nu_size': 2,
    'irradiance_texture_mu_s_size': 8,
    'irradiance_texture_r_size': 4,
}

TINY_TABLE_SIZES = {
    'transmittance_texture_mu_size': 16,
    'transmittance_texture_r_size': 4,
    'scattering_texture_r_size': 2,
    'scattering_texture_mu_size': 4,
    'scattering_texture_mu_s_size': 2,
    'scattering_texture_nu_size': 2,
    'irradiance_texture_mu_s_size': 4,
    'irradiance_texture_r_size': 2,
}


@pytest.fixture(scope="session")
def small_params():
    return AtmosphereParameters.earth_default().replace(**SMALL_TABLE_SIZES)


@pytest.fixture(scope="session")
def tiny_params():
    return AtmosphereParameters.earth_default().replace(**TINY_TABLE_SIZES)


@pytest.fixture(scope="session")
def small_transmittance(small_params):
    """Transmittance table for small_params."""
    table = np.zeros(small_params.transmittance_shape, dtype=np.float32)
    precompute_transmittance(small_params, table, ComputeBackend())
    table.flags.writeable = False
    return table


@pytest.fixture(scope="session")
def built_model(small_params):
    """Model with three scattering orders over the small tables."""
    model = AtmosphereModel(small_params, backend=ComputeBackend(workers=2, group_size=1))
    model.init(num_scattering_orders=3)
    return model
