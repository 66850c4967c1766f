"""
Skylut Parameters - Atmosphere and draw parameter structures.

Distances are in kilometers and scattering/extinction coefficients in km^-1.
"""

import dataclasses
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np
import yaml

from .constants import (
    EARTH_RADIUS,
    EARTH_TOP_RADIUS,
    SUN_ANGULAR_RADIUS,
    SOLAR_IRRADIANCE,
    RAYLEIGH_SCALE_HEIGHT,
    RAYLEIGH_SCATTERING_COEFFICIENTS,
    MIE_SCALE_HEIGHT,
    MIE_SCATTERING_COEFFICIENT,
    MIE_EXTINCTION_COEFFICIENT,
    MIE_PHASE_FUNCTION_G,
    MIE_ANGSTROM_BETA,
    OZONE_CENTER_ALTITUDE,
    OZONE_WIDTH,
    OZONE_ABSORPTION_COEFFICIENTS,
    DEFAULT_GROUND_ALBEDO,
    MU_S_MIN,
    TRANSMITTANCE_TEXTURE_MU_SIZE,
    TRANSMITTANCE_TEXTURE_R_SIZE,
    SCATTERING_TEXTURE_R_SIZE,
    SCATTERING_TEXTURE_MU_SIZE,
    SCATTERING_TEXTURE_MU_S_SIZE,
    SCATTERING_TEXTURE_NU_SIZE,
    IRRADIANCE_TEXTURE_MU_S_SIZE,
    IRRADIANCE_TEXTURE_R_SIZE,
)


@dataclass(frozen=True)
class DensityProfileLayer:
    """
    An atmosphere layer whose density is defined as:
        exp_term * exp(exp_scale * h) + linear_term * h + constant_term
    clamped to [0, 1], where h is the altitude in km.

    Attributes:
        width: Layer width in km (ignored for the upper layer)
        exp_term: Exponential term coefficient (unitless)
        exp_scale: Exponential scale in km^-1
        linear_term: Linear term coefficient in km^-1
        constant_term: Constant term (unitless)
    """
    width: float = 0.0
    exp_term: float = 0.0
    exp_scale: float = 0.0
    linear_term: float = 0.0
    constant_term: float = 0.0

    def get_density(self, altitude):
        """Compute density at given altitude within this layer."""
        density = (
            self.exp_term * np.exp(self.exp_scale * altitude) +
            self.linear_term * altitude +
            self.constant_term
        )
        return np.clip(density, 0.0, 1.0)


@dataclass(frozen=True)
class DensityProfile:
    """
    Two stacked layers: the lower one is used below its width, the upper one
    everywhere above and extends to the top of the atmosphere.
    """
    layers: Tuple[DensityProfileLayer, DensityProfileLayer] = (
        DensityProfileLayer(), DensityProfileLayer()
    )

    def __post_init__(self):
        layers = tuple(
            layer if isinstance(layer, DensityProfileLayer) else DensityProfileLayer(**layer)
            for layer in self.layers
        )
        if len(layers) != 2:
            raise ValueError(f"A density profile needs exactly 2 layers, got {len(layers)}")
        object.__setattr__(self, 'layers', layers)

    def get_density(self, altitude):
        """Density at altitude (scalar or array), in [0, 1]."""
        lower, upper = self.layers
        return np.where(
            altitude < lower.width,
            lower.get_density(altitude),
            upper.get_density(altitude),
        )

    @classmethod
    def exponential(cls, scale_height: float) -> 'DensityProfile':
        """Exponentially decreasing density with the given scale height."""
        return cls((
            DensityProfileLayer(),
            DensityProfileLayer(exp_term=1.0, exp_scale=-1.0 / scale_height),
        ))

    @classmethod
    def tent(cls, center: float, half_width: float) -> 'DensityProfile':
        """Triangular profile, 1 at center and 0 at center +/- half_width."""
        return cls((
            DensityProfileLayer(
                width=center,
                linear_term=1.0 / half_width,
                constant_term=1.0 - center / half_width,
            ),
            DensityProfileLayer(
                linear_term=-1.0 / half_width,
                constant_term=1.0 + center / half_width,
            ),
        ))

    def to_dict(self) -> Dict[str, Any]:
        return {'layers': [dataclasses.asdict(layer) for layer in self.layers]}

    @classmethod
    def from_dict(cls, data) -> 'DensityProfile':
        if isinstance(data, DensityProfile):
            return data
        layers = data['layers'] if isinstance(data, dict) else data
        return cls(tuple(DensityProfileLayer(**layer) for layer in layers))


_SPECTRUM_FIELDS = (
    'solar_irradiance',
    'rayleigh_scattering',
    'mie_scattering',
    'mie_extinction',
    'absorption_extinction',
    'ground_albedo',
)

_PROFILE_FIELDS = ('rayleigh_density', 'mie_density', 'absorption_density')

_SIZE_FIELDS = (
    'transmittance_texture_mu_size',
    'transmittance_texture_r_size',
    'scattering_texture_r_size',
    'scattering_texture_mu_size',
    'scattering_texture_mu_s_size',
    'scattering_texture_nu_size',
    'irradiance_texture_mu_s_size',
    'irradiance_texture_r_size',
)


def _spectrum(value) -> np.ndarray:
    array = np.array(value, dtype=np.float64)
    if array.ndim == 0:
        array = np.full(3, float(array))
    array.flags.writeable = False
    return array


@dataclass(frozen=True, eq=False)
class AtmosphereParameters:
    """
    Complete, immutable description of an atmosphere and of the lookup table
    sizes used to precompute it. Any change requires a full rebuild.
    """

    # Solar irradiance at the top of the atmosphere
    solar_irradiance: np.ndarray = field(default_factory=lambda: SOLAR_IRRADIANCE.copy())
    # Warning: approximations used are valid only below 0.1 radians
    sun_angular_radius: float = SUN_ANGULAR_RADIUS

    # Planet geometry
    bottom_radius: float = EARTH_RADIUS
    top_radius: float = EARTH_TOP_RADIUS

    # Air molecules
    rayleigh_density: DensityProfile = field(
        default_factory=lambda: DensityProfile.exponential(RAYLEIGH_SCALE_HEIGHT)
    )
    rayleigh_scattering: np.ndarray = field(
        default_factory=lambda: RAYLEIGH_SCATTERING_COEFFICIENTS.copy()
    )

    # Aerosols
    mie_density: DensityProfile = field(
        default_factory=lambda: DensityProfile.exponential(MIE_SCALE_HEIGHT)
    )
    mie_scattering: np.ndarray = field(
        default_factory=lambda: np.array([MIE_SCATTERING_COEFFICIENT] * 3)
    )
    mie_extinction: np.ndarray = field(
        default_factory=lambda: np.array([MIE_EXTINCTION_COEFFICIENT] * 3)
    )
    mie_phase_function_g: float = MIE_PHASE_FUNCTION_G

    # Absorbing species (ozone)
    absorption_density: DensityProfile = field(
        default_factory=lambda: DensityProfile.tent(OZONE_CENTER_ALTITUDE, OZONE_WIDTH)
    )
    absorption_extinction: np.ndarray = field(
        default_factory=lambda: OZONE_ABSORPTION_COEFFICIENTS.copy()
    )

    ground_albedo: np.ndarray = field(
        default_factory=lambda: np.array([DEFAULT_GROUND_ALBEDO] * 3)
    )

    # Cosine of the largest sun zenith angle that gets table resolution
    mu_s_min: float = MU_S_MIN

    # Table dimensions
    transmittance_texture_mu_size: int = TRANSMITTANCE_TEXTURE_MU_SIZE
    transmittance_texture_r_size: int = TRANSMITTANCE_TEXTURE_R_SIZE
    scattering_texture_r_size: int = SCATTERING_TEXTURE_R_SIZE
    scattering_texture_mu_size: int = SCATTERING_TEXTURE_MU_SIZE
    scattering_texture_mu_s_size: int = SCATTERING_TEXTURE_MU_S_SIZE
    scattering_texture_nu_size: int = SCATTERING_TEXTURE_NU_SIZE
    irradiance_texture_mu_s_size: int = IRRADIANCE_TEXTURE_MU_S_SIZE
    irradiance_texture_r_size: int = IRRADIANCE_TEXTURE_R_SIZE

    def __post_init__(self):
        """Freeze spectra as read-only float64 arrays."""
        for name in _SPECTRUM_FIELDS:
            object.__setattr__(self, name, _spectrum(getattr(self, name)))
        for name in _PROFILE_FIELDS:
            object.__setattr__(self, name, DensityProfile.from_dict(getattr(self, name)))

    # Table shapes, laid out (depth, height, width, channels)

    @property
    def transmittance_shape(self) -> Tuple[int, int, int]:
        return (self.transmittance_texture_r_size, self.transmittance_texture_mu_size, 3)

    @property
    def irradiance_shape(self) -> Tuple[int, int, int]:
        return (self.irradiance_texture_r_size, self.irradiance_texture_mu_s_size, 3)

    @property
    def scattering_extent(self) -> Tuple[int, int, int]:
        """(width, height, depth) of the scattering table."""
        return (
            self.scattering_texture_nu_size * self.scattering_texture_mu_s_size,
            self.scattering_texture_mu_size,
            self.scattering_texture_r_size,
        )

    @property
    def scattering_shape(self) -> Tuple[int, int, int, int]:
        width, height, depth = self.scattering_extent
        return (depth, height, width, 4)

    def get_atmosphere_height(self) -> float:
        """Return the atmosphere thickness in km."""
        return self.top_radius - self.bottom_radius

    def validate(self) -> None:
        """
        Check the parameters before a precomputation.

        Raises:
            ValueError: listing every invalid setting
        """
        errors: List[str] = []
        if not 0.0 < self.bottom_radius < self.top_radius:
            errors.append(
                f"need 0 < bottom_radius < top_radius, got {self.bottom_radius} and {self.top_radius}"
            )
        for name in _SIZE_FIELDS:
            size = getattr(self, name)
            if int(size) != size or size < 2:
                errors.append(f"{name} must be an integer >= 2, got {size}")
        if self.scattering_texture_mu_size % 2:
            errors.append(
                f"scattering_texture_mu_size must be even, got {self.scattering_texture_mu_size}"
            )
        for name in _SPECTRUM_FIELDS:
            if getattr(self, name).shape != (3,):
                errors.append(f"{name} must have 3 components, got shape {getattr(self, name).shape}")
        if not -1.0 < self.mu_s_min < 0.0:
            errors.append(f"mu_s_min must be in (-1, 0), got {self.mu_s_min}")
        if not -1.0 < self.mie_phase_function_g < 1.0:
            errors.append(f"mie_phase_function_g must be in (-1, 1), got {self.mie_phase_function_g}")
        if not 0.0 < self.sun_angular_radius < 0.1:
            errors.append(f"sun_angular_radius must be in (0, 0.1), got {self.sun_angular_radius}")
        if errors:
            raise ValueError("Invalid atmosphere parameters: " + "; ".join(errors))

    def replace(self, **changes) -> 'AtmosphereParameters':
        """Return a copy with some fields changed."""
        return dataclasses.replace(self, **changes)

    @classmethod
    def earth_default(cls, use_ozone: bool = True) -> 'AtmosphereParameters':
        """Create default Earth atmosphere parameters."""
        if not use_ozone:
            return cls(absorption_extinction=np.zeros(3))
        return cls()

    @classmethod
    def from_artistic_controls(
        cls,
        rayleigh_density_scale: float = 1.0,
        mie_density_scale: float = 1.0,
        mie_phase_g: float = MIE_PHASE_FUNCTION_G,
        rayleigh_height: float = RAYLEIGH_SCALE_HEIGHT,
        mie_height: float = MIE_SCALE_HEIGHT,
        ground_albedo: float = DEFAULT_GROUND_ALBEDO,
        use_ozone: bool = True,
        ozone_density: float = 1.0,
        mie_angstrom_beta: float = MIE_ANGSTROM_BETA,
        **table_sizes,
    ) -> 'AtmosphereParameters':
        """
        Create atmosphere parameters from artistic control values.

        Args:
            rayleigh_density_scale: Multiplier for air molecule density
            mie_density_scale: Multiplier for aerosol density
            mie_phase_g: Mie phase function asymmetry parameter
            rayleigh_height: Scale height for air molecules (km)
            mie_height: Scale height for aerosols (km)
            ground_albedo: Ground reflectivity (0-1)
            use_ozone: Include ozone absorption layer
            ozone_density: Multiplier for ozone absorption (affects sunset colors)
            mie_angstrom_beta: Aerosol optical thickness (higher = denser haze)
            **table_sizes: Optional table dimension overrides
        """
        # Haze scales relative to the default beta of 0.04
        beta_scale = mie_angstrom_beta / MIE_ANGSTROM_BETA if mie_angstrom_beta > 0 else 1.0
        mie_scale = mie_density_scale * beta_scale

        if not use_ozone or ozone_density <= 0:
            absorption_extinction = np.zeros(3)
        else:
            absorption_extinction = OZONE_ABSORPTION_COEFFICIENTS * ozone_density

        return cls(
            rayleigh_density=DensityProfile.exponential(rayleigh_height),
            rayleigh_scattering=RAYLEIGH_SCATTERING_COEFFICIENTS * rayleigh_density_scale,
            mie_density=DensityProfile.exponential(mie_height),
            mie_scattering=np.array([MIE_SCATTERING_COEFFICIENT * mie_scale] * 3),
            mie_extinction=np.array([MIE_EXTINCTION_COEFFICIENT * mie_scale] * 3),
            mie_phase_function_g=float(np.clip(mie_phase_g, -0.999, 0.999)),
            ground_albedo=np.array([ground_albedo] * 3),
            absorption_extinction=absorption_extinction,
            **table_sizes,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Plain, JSON serialisable representation."""
        result: Dict[str, Any] = {}
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if isinstance(value, np.ndarray):
                value = value.tolist()
            elif isinstance(value, DensityProfile):
                value = value.to_dict()
            result[f.name] = value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AtmosphereParameters':
        """Build parameters from a (possibly partial) mapping of field values."""
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown atmosphere parameters: {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> 'AtmosphereParameters':
        """Load parameters from a JSON or YAML file."""
        path = Path(path)
        with open(path) as f:
            if path.suffix.lower() == '.json':
                data = json.load(f)
            elif path.suffix.lower() in ('.yaml', '.yml'):
                data = yaml.safe_load(f)
            else:
                raise ValueError(f"Unsupported parameter file type: {path.suffix}")
        return cls.from_dict(data or {})


def sun_direction_from_angles(zenith: float, azimuth: float) -> np.ndarray:
    """Unit vector towards the sun in a Z-up frame (angles in radians)."""
    sin_zenith = np.sin(zenith)
    return np.array([
        sin_zenith * np.sin(azimuth),
        sin_zenith * np.cos(azimuth),
        np.cos(zenith),
    ])


@dataclass
class DrawParameters:
    """
    Per-draw block handed to the sky reconstruction.

    All coordinates are in the planet's reference frame (center at origin, km).
    """

    # (projection * view)^-1
    inverse_viewproj: np.ndarray = field(default_factory=lambda: np.eye(4))
    camera_position: np.ndarray = field(
        default_factory=lambda: np.array([0.0, 0.0, EARTH_RADIUS + 0.001])
    )
    sun_direction: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0, 1.0]))
    mie_anisotropy: float = MIE_PHASE_FUNCTION_G
    solar_irradiance: np.ndarray = field(default_factory=lambda: SOLAR_IRRADIANCE.copy())

    def __post_init__(self):
        self.inverse_viewproj = np.asarray(self.inverse_viewproj, dtype=np.float64)
        self.camera_position = np.asarray(self.camera_position, dtype=np.float64)
        self.sun_direction = np.asarray(self.sun_direction, dtype=np.float64)
        self.sun_direction = self.sun_direction / np.linalg.norm(self.sun_direction)
        self.solar_irradiance = np.asarray(self.solar_irradiance, dtype=np.float64)

    @classmethod
    def look_at(
        cls,
        camera_position,
        target,
        up=(0.0, 0.0, 1.0),
        fov: float = 50.0,
        aspect: float = 1.0,
        near: float = 0.01,
        far: float = 1000.0,
        sun_direction=(0.0, 0.0, 1.0),
        params: Optional[AtmosphereParameters] = None,
    ) -> 'DrawParameters':
        """
        Build draw parameters for a perspective camera.

        Args:
            camera_position: Camera position (km)
            target: Point the camera looks at (km)
            up: Approximate up vector
            fov: Vertical field of view in degrees
            aspect: Width / height
            near, far: Clip planes (km)
            sun_direction: Direction towards the sun
            params: Atmosphere whose g and solar irradiance to use
        """
        eye = np.asarray(camera_position, dtype=np.float64)
        forward = np.asarray(target, dtype=np.float64) - eye
        forward /= np.linalg.norm(forward)
        right = np.cross(forward, np.asarray(up, dtype=np.float64))
        right /= np.linalg.norm(right)
        true_up = np.cross(right, forward)

        view = np.eye(4)
        view[0, :3] = right
        view[1, :3] = true_up
        view[2, :3] = -forward
        view[:3, 3] = -view[:3, :3] @ eye

        f = 1.0 / np.tan(np.radians(fov) / 2.0)
        proj = np.zeros((4, 4))
        proj[0, 0] = f / aspect
        proj[1, 1] = f
        proj[2, 2] = (far + near) / (near - far)
        proj[2, 3] = 2.0 * far * near / (near - far)
        proj[3, 2] = -1.0

        params = params or AtmosphereParameters()
        return cls(
            inverse_viewproj=np.linalg.inv(proj @ view),
            camera_position=eye,
            sun_direction=sun_direction,
            mie_anisotropy=params.mie_phase_function_g,
            solar_irradiance=params.solar_irradiance.copy(),
        )
