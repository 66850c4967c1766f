"""
Skylut Mapping Tests - Ray geometry and table coordinate round trips.
"""

import numpy as np
import pytest

from skylut.core.functions import (
    distance_to_top_atmosphere_boundary,
    distance_to_bottom_atmosphere_boundary,
    ray_intersects_ground,
    get_texture_coord_from_unit_range,
    get_unit_range_from_texture_coord,
    mie_phase_function,
    rayleigh_phase_function,
)
from skylut.core.mapping import (
    get_transmittance_texture_uv_from_r_mu,
    get_r_mu_from_transmittance_texture_uv,
    get_scattering_texture_uvwz_from_r_mu_mu_s_nu,
    get_r_mu_mu_s_nu_from_scattering_texture_uvwz,
    get_r_mu_mu_s_nu_from_scattering_texel,
    get_irradiance_texture_uv_from_r_mu_s,
    get_r_mu_s_from_irradiance_texture_uv,
)


def test_boundary_distances(small_params):
    bottom, top = small_params.bottom_radius, small_params.top_radius
    assert distance_to_top_atmosphere_boundary(small_params, bottom, 1.0) == pytest.approx(top - bottom)
    assert distance_to_bottom_atmosphere_boundary(small_params, bottom + 1.0, -1.0) == pytest.approx(1.0)
    # Horizontal ray from the ground
    assert distance_to_top_atmosphere_boundary(small_params, bottom, 0.0) == pytest.approx(
        np.sqrt(top ** 2 - bottom ** 2))


def test_ray_intersects_ground(small_params):
    r = small_params.bottom_radius + 1.0
    mu_horizon = -np.sqrt(1.0 - (small_params.bottom_radius / r) ** 2)
    assert ray_intersects_ground(small_params, r, -1.0)
    assert not ray_intersects_ground(small_params, r, mu_horizon + 1e-6)
    assert ray_intersects_ground(small_params, r, mu_horizon - 1e-6)
    assert not ray_intersects_ground(small_params, r, 0.0)


def test_texture_coord_unit_range():
    assert get_texture_coord_from_unit_range(0.0, 16) == pytest.approx(0.5 / 16)
    assert get_texture_coord_from_unit_range(1.0, 16) == pytest.approx(1.0 - 0.5 / 16)
    x = np.linspace(0.0, 1.0, 11)
    np.testing.assert_allclose(
        get_unit_range_from_texture_coord(get_texture_coord_from_unit_range(x, 7), 7), x, atol=1e-12)


def _sphere_integral(phase, nu):
    # 2 pi times the trapezoidal integral over nu
    return 2.0 * np.pi * np.sum(0.5 * (phase[1:] + phase[:-1]) * np.diff(nu))


def test_phase_functions_are_normalized():
    nu = np.linspace(-1.0, 1.0, 20001)
    assert _sphere_integral(rayleigh_phase_function(nu), nu) == pytest.approx(1.0, rel=1e-6)
    assert _sphere_integral(mie_phase_function(0.8, nu), nu) == pytest.approx(1.0, rel=1e-3)


def test_transmittance_uv_round_trip(small_params):
    r, mu = np.meshgrid(
        np.linspace(small_params.bottom_radius, small_params.top_radius, 9),
        np.linspace(-1.0, 1.0, 41),
    )
    sky = ~ray_intersects_ground(small_params, r, mu)
    r, mu = r[sky], mu[sky]

    u, v = get_transmittance_texture_uv_from_r_mu(small_params, r, mu)
    r_back, mu_back = get_r_mu_from_transmittance_texture_uv(small_params, u, v)

    np.testing.assert_allclose(r_back, r, atol=1e-6)
    np.testing.assert_allclose(mu_back, mu, atol=1e-6)


def test_transmittance_uv_corners(small_params):
    size_mu = small_params.transmittance_texture_mu_size
    size_r = small_params.transmittance_texture_r_size
    u, v = get_transmittance_texture_uv_from_r_mu(small_params, small_params.bottom_radius, 1.0)
    assert u == pytest.approx(0.5 / size_mu)
    assert v == pytest.approx(0.5 / size_r)
    # Horizon seen from the top boundary is the longest path
    top = small_params.top_radius
    mu_horizon = -np.sqrt(1.0 - (small_params.bottom_radius / top) ** 2)
    u, v = get_transmittance_texture_uv_from_r_mu(small_params, top, mu_horizon)
    assert u == pytest.approx(1.0 - 0.5 / size_mu)
    assert v == pytest.approx(1.0 - 0.5 / size_r)


@pytest.mark.parametrize("r_offset, mu", [
    (0.5, 1.0),
    (0.5, 0.2),
    (0.5, -0.03),
    (10.0, -0.5),
    (10.0, -0.01),
    (30.0, 0.0),
    (59.0, -0.9),
])
def test_scattering_uvwz_round_trip(small_params, r_offset, mu):
    r = small_params.bottom_radius + r_offset
    mu_s = np.linspace(-0.15, 1.0, 7)
    nu = np.linspace(-0.9, 0.9, 7)
    ground = ray_intersects_ground(small_params, r, mu)

    u, v, w, z = get_scattering_texture_uvwz_from_r_mu_mu_s_nu(small_params, r, mu, mu_s, nu, ground)
    assert np.all((w < 0.5) == ground)

    r_back, mu_back, mu_s_back, nu_back, ground_back = get_r_mu_mu_s_nu_from_scattering_texture_uvwz(
        small_params, u, v, w, z)

    np.testing.assert_allclose(r_back, r, atol=1e-4)
    np.testing.assert_allclose(mu_back, mu, atol=1e-4)
    np.testing.assert_allclose(mu_s_back, mu_s, atol=1e-4)
    np.testing.assert_allclose(nu_back, nu, atol=1e-4)
    assert np.all(ground_back == ground)


def test_scattering_texels_have_consistent_nu(small_params):
    width, height, depth = small_params.scattering_extent
    z, y, x = np.meshgrid(np.arange(depth), np.arange(height), np.arange(width), indexing='ij')
    r, mu, mu_s, nu, ground = get_r_mu_mu_s_nu_from_scattering_texel(small_params, x, y, z)

    spread = np.sqrt((1.0 - mu * mu) * (1.0 - mu_s * mu_s))
    assert np.all(nu >= mu * mu_s - spread - 1e-12)
    assert np.all(nu <= mu * mu_s + spread + 1e-12)
    assert np.all((r >= small_params.bottom_radius) & (r <= small_params.top_radius))
    # Lower half of the mu axis holds ground rays
    assert np.all(ground[:, :height // 2]) and not np.any(ground[:, height // 2:])


def test_irradiance_uv_round_trip(small_params):
    r, mu_s = np.meshgrid(
        np.linspace(small_params.bottom_radius, small_params.top_radius, 5),
        np.linspace(-1.0, 1.0, 9),
    )
    u, v = get_irradiance_texture_uv_from_r_mu_s(small_params, r, mu_s)
    r_back, mu_s_back = get_r_mu_s_from_irradiance_texture_uv(small_params, u, v)
    np.testing.assert_allclose(r_back, r, atol=1e-6)
    np.testing.assert_allclose(mu_s_back, mu_s, atol=1e-9)
