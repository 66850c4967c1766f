"""
Skylut Render Tests - Sky radiance, aerial perspective and irradiance lookups.
"""

import numpy as np
import pytest

from skylut.core.model import AtmosphereModel
from skylut.core.parameters import DrawParameters, sun_direction_from_angles
from skylut.core.render import (
    Renderer,
    render_sky,
    get_extrapolated_single_mie_scattering,
    get_sky_radiance,
    get_sky_radiance_to_point,
    get_sun_and_sky_irradiance,
)

UP = np.array([0.0, 0.0, 1.0])


def test_camera_in_space_looking_away(built_model, small_params):
    """A ray leaving the planet from outside the atmosphere sees nothing."""
    camera = UP * 2.0 * small_params.top_radius
    radiance, transmittance = get_sky_radiance(
        small_params, built_model.textures, camera, UP, UP)
    np.testing.assert_array_equal(radiance, 0.0)
    np.testing.assert_array_equal(transmittance, 1.0)


def test_camera_in_space_looking_down(built_model, small_params):
    """The camera moves to the top boundary; the ray then hits the ground."""
    camera = UP * 2.0 * small_params.top_radius
    radiance, transmittance = get_sky_radiance(
        small_params, built_model.textures, camera, -UP, UP)
    np.testing.assert_array_equal(transmittance, 0.0)
    assert np.all(radiance > 0.0)


def test_zenith_transmittance_matches_table(built_model, small_params):
    camera = UP * small_params.bottom_radius
    _, transmittance = get_sky_radiance(small_params, built_model.textures, camera, UP, UP)
    np.testing.assert_allclose(transmittance, built_model.textures.transmittance[0, 0], rtol=1e-5)


def test_sky_is_blue_at_noon(built_model, small_params):
    camera = UP * (small_params.bottom_radius + 0.1)
    view_ray = sun_direction_from_angles(np.radians(60.0), 0.0)
    radiance, transmittance = get_sky_radiance(
        small_params, built_model.textures, camera, view_ray, UP)
    assert np.all(radiance > 0.0)
    assert radiance[2] > radiance[0]
    assert np.all(transmittance > 0.0) and np.all(transmittance < 1.0)


def test_radiance_is_vectorized(built_model, small_params):
    camera = UP * (small_params.bottom_radius + 0.5)
    view_rays = np.stack([
        sun_direction_from_angles(np.radians(zenith), 0.3) for zenith in (0.0, 45.0, 89.0, 120.0)
    ])
    sun = sun_direction_from_angles(np.radians(30.0), 1.0)
    radiance, transmittance = get_sky_radiance(
        small_params, built_model.textures, camera, view_rays, sun)
    assert radiance.shape == (4, 3)
    for i, view_ray in enumerate(view_rays):
        single, _ = get_sky_radiance(small_params, built_model.textures, camera, view_ray, sun)
        np.testing.assert_allclose(radiance[i], single)
    # Looking down hits the ground
    np.testing.assert_array_equal(transmittance[3], 0.0)


def test_point_at_infinity_matches_sky_radiance(built_model, small_params):
    camera = UP * (small_params.bottom_radius + 1.0)
    view_ray = sun_direction_from_angles(np.radians(70.0), 0.5)
    sun = sun_direction_from_angles(np.radians(40.0), 2.0)
    point = np.full(3, np.inf)

    expected = get_sky_radiance(small_params, built_model.textures, camera, view_ray, sun)
    actual = get_sky_radiance_to_point(small_params, built_model.textures, camera, view_ray, point, sun)
    np.testing.assert_allclose(actual[0], expected[0])
    np.testing.assert_allclose(actual[1], expected[1])


def test_nearby_point_transmits_more(built_model, small_params):
    camera = UP * (small_params.bottom_radius + 0.2)
    view_ray = UP
    point = camera + view_ray * 2.0

    sky_radiance, sky_transmittance = get_sky_radiance(
        small_params, built_model.textures, camera, view_ray, UP)
    radiance, transmittance = get_sky_radiance_to_point(
        small_params, built_model.textures, camera, view_ray, point, UP)

    assert np.all(transmittance > sky_transmittance)
    assert np.all(transmittance <= 1.0)
    assert np.all(np.isfinite(radiance))


def test_point_at_camera_sees_nothing(built_model, small_params):
    camera = UP * (small_params.bottom_radius + 0.2)
    sun = sun_direction_from_angles(np.radians(30.0), 0.0)
    radiance, transmittance = get_sky_radiance_to_point(
        small_params, built_model.textures, camera, UP, camera, sun)

    np.testing.assert_allclose(radiance, 0.0, atol=1e-6)
    np.testing.assert_allclose(transmittance, 1.0)


def test_radiance_to_point_grows_with_distance(built_model, small_params):
    camera = UP * (small_params.bottom_radius + 0.2)
    sun = sun_direction_from_angles(np.radians(30.0), 0.0)
    distances = np.array([0.0, 1.0, 10.0, 50.0])
    points = camera + UP * distances[:, np.newaxis]

    radiance, transmittance = get_sky_radiance_to_point(
        small_params, built_model.textures, camera, UP, points, sun)
    sky_radiance, _ = get_sky_radiance(small_params, built_model.textures, camera, UP, sun)

    assert np.all(np.diff(radiance, axis=0) > 0.0)
    assert np.all(np.diff(transmittance, axis=0) < 0.0)
    assert np.all(radiance <= sky_radiance + 1e-6)


@pytest.mark.parametrize("sun", [
    np.array([0.0, 1.0, 0.0]),
    sun_direction_from_angles(np.radians(95.0), 0.0),
    sun_direction_from_angles(np.radians(110.0), 0.0),
])
def test_no_aerosol_light_to_point_without_sun(built_model, small_params, sun):
    """Anisotropy has no effect once the aerosol term is faded out."""
    camera = UP * (small_params.bottom_radius + 0.2)
    view_ray = sun_direction_from_angles(np.radians(80.0), 0.0)
    point = camera + view_ray * 5.0

    anisotropic, _ = get_sky_radiance_to_point(
        small_params, built_model.textures, camera, view_ray, point, sun,
        mie_phase_function_g=0.8)
    isotropic, _ = get_sky_radiance_to_point(
        small_params, built_model.textures, camera, view_ray, point, sun,
        mie_phase_function_g=0.0)
    np.testing.assert_array_equal(anisotropic, isotropic)


def test_aerosol_light_to_point_with_sun_up(built_model, small_params):
    camera = UP * (small_params.bottom_radius + 0.2)
    sun = sun_direction_from_angles(np.radians(60.0), 0.0)
    view_ray = sun_direction_from_angles(np.radians(70.0), 0.0)
    point = camera + view_ray * 5.0

    anisotropic, _ = get_sky_radiance_to_point(
        small_params, built_model.textures, camera, view_ray, point, sun,
        mie_phase_function_g=0.8)
    isotropic, _ = get_sky_radiance_to_point(
        small_params, built_model.textures, camera, view_ray, point, sun,
        mie_phase_function_g=0.0)
    assert not np.allclose(anisotropic, isotropic)


def test_extrapolated_mie(small_params):
    beta_r = small_params.rayleigh_scattering
    beta_m = small_params.mie_scattering
    scattering = np.concatenate([2.0 * beta_r, [3.0 * beta_m[0]]])
    np.testing.assert_allclose(
        get_extrapolated_single_mie_scattering(small_params, scattering), 3.0 * beta_m)


def test_extrapolated_mie_without_rayleigh_red(small_params):
    scattering = np.array([[0.0, 1.0, 1.0, 1.0], [-1e-9, 1.0, 1.0, 1.0]])
    np.testing.assert_array_equal(
        get_extrapolated_single_mie_scattering(small_params, scattering), 0.0)


def test_sky_irradiance_depends_on_orientation(built_model, small_params):
    point = UP * (small_params.bottom_radius + 0.5)
    sun = sun_direction_from_angles(np.radians(30.0), 0.0)
    normals = np.array([UP, [0.0, 1.0, 0.0], -UP])

    sun_irradiance, sky_irradiance = get_sun_and_sky_irradiance(
        small_params, built_model.textures, point, normals, sun)

    assert np.all(sky_irradiance[0] > 0.0)
    np.testing.assert_allclose(sky_irradiance[1], 0.5 * sky_irradiance[0])
    np.testing.assert_allclose(sky_irradiance[2], 0.0, atol=1e-12)

    np.testing.assert_allclose(sun_irradiance[0] * 0.5, sun_irradiance[1] * np.cos(np.radians(30.0)))
    np.testing.assert_array_equal(sun_irradiance[2], 0.0)


def test_no_sun_irradiance_at_night(built_model, small_params):
    point = UP * small_params.bottom_radius
    sun = sun_direction_from_angles(np.radians(120.0), 0.0)
    sun_irradiance, _ = get_sun_and_sky_irradiance(small_params, built_model.textures, point, UP, sun)
    np.testing.assert_array_equal(sun_irradiance, 0.0)


def test_renderer_requires_initialized_model():
    with pytest.raises(RuntimeError):
        Renderer(AtmosphereModel())


def _draw(small_params, **overrides):
    camera = UP * (small_params.bottom_radius + 0.01)
    target = camera + np.array([1.0, 0.0, 0.2])
    draw = DrawParameters.look_at(
        camera, target, fov=60.0, aspect=1.5,
        sun_direction=sun_direction_from_angles(np.radians(50.0), 1.2),
        params=small_params,
    )
    for name, value in overrides.items():
        setattr(draw, name, value)
    return draw


def test_view_rays(built_model, small_params):
    draw = _draw(small_params)
    rays = Renderer(built_model).view_rays(draw, 3, 5)

    assert rays.shape == (5, 3, 3)
    np.testing.assert_allclose(np.linalg.norm(rays, axis=-1), 1.0)
    forward = np.array([1.0, 0.0, 0.2]) / np.linalg.norm([1.0, 0.0, 0.2])
    np.testing.assert_allclose(rays[2, 1], forward, atol=1e-6)
    # Row 0 is the top of the image
    assert rays[0, 1, 2] > rays[4, 1, 2]


def test_draw(built_model, small_params):
    draw = _draw(small_params)
    radiance, transmittance = render_sky(built_model, draw, 6, 4)
    assert radiance.shape == (4, 6, 3)
    assert transmittance.shape == (4, 6, 3)
    assert np.all(np.isfinite(radiance))
    assert np.all(radiance >= 0.0) and np.any(radiance > 0.0)


def test_draw_overrides(built_model, small_params):
    renderer = Renderer(built_model)
    base, _ = renderer.draw(_draw(small_params), 4, 4)

    brighter, _ = renderer.draw(
        _draw(small_params, solar_irradiance=2.0 * small_params.solar_irradiance), 4, 4)
    np.testing.assert_allclose(brighter, 2.0 * base)

    isotropic, _ = renderer.draw(_draw(small_params, mie_anisotropy=0.0), 4, 4)
    assert not np.allclose(isotropic, base)


def test_draw_to_points(built_model, small_params):
    renderer = Renderer(built_model)
    draw = _draw(small_params)
    rays = renderer.view_rays(draw, 4, 4)

    sky, _ = renderer.draw(draw, 4, 4)
    at_infinity, _ = renderer.draw(draw, 4, 4, points=np.full((4, 4, 3), np.inf))
    np.testing.assert_allclose(at_infinity, sky)

    points = draw.camera_position + rays * 0.02
    radiance, transmittance = renderer.draw(draw, 4, 4, points=points)
    assert radiance.shape == (4, 4, 3)
    assert np.all(transmittance > 0.0) and np.all(transmittance <= 1.0)
