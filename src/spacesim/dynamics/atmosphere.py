"""
===============================================================================
SPACESIM - Atmosphere Models
===============================================================================
Density models for the atmosphere of a primary body and the aerodynamic drag
they exert on bodies flying through them.

Drag on a body with reference area A and drag coefficient Cd:

    F_drag = -0.5 * rho(h) * |v_rel| * v_rel * Cd * A

where v_rel is the velocity relative to the co-rotating atmosphere,

    v_rel = v - omega x r

Models provided:

    EarthAtmosphere        -- layered troposphere / stratosphere model
                              (NASA Glenn Research Center, SI form)
    ExponentialAtmosphere  -- rho_0 * exp(-h / H)
    NoAtmosphere           -- airless body

References
----------
    [1] NASA Glenn Research Center, "Earth Atmosphere Model".
    [2] Vallado, "Fundamentals of Astrodynamics and Applications", Sec. 8.6.2.
===============================================================================
"""

from dataclasses import dataclass

import numpy as np

from spacesim.core.constants import EARTH_ATMOSPHERE_LIMIT
from spacesim.core.state import ObjectConfig, ObjectState


@dataclass(frozen=True)
class AtmosphericProperties:
    """
    Aerodynamic properties of a body flying through an atmosphere.

    Attributes
    ----------
    reference_area : float
        Cross-sectional reference area (m^2).
    drag_coefficient : float
        Dimensionless drag coefficient Cd.
    """
    reference_area: float
    drag_coefficient: float

    @classmethod
    def from_diameter(cls, diameter: float, drag_coefficient: float) -> 'AtmosphericProperties':
        """Circular cross-section of the given diameter."""
        return cls(np.pi * (diameter / 2.0) ** 2, drag_coefficient)


class AtmosphericModel:
    """
    Base atmosphere: subclasses provide the density profile.

    Parameters
    ----------
    limit : float
        Altitude above the surface beyond which the density is zero (m).
    """

    def __init__(self, limit: float) -> None:
        self.limit = limit

    def density(self, altitude: float) -> float:
        raise NotImplementedError

    def altitude(self, primary_config: ObjectConfig, state: ObjectState) -> float:
        return state.r_mag - primary_config.radius

    def inside(self, primary_config: ObjectConfig, state: ObjectState) -> bool:
        """True when the relative state lies below the atmosphere limit."""
        return self.altitude(primary_config, state) < self.limit

    def relative_velocity(self, primary_config: ObjectConfig, state: ObjectState) -> np.ndarray:
        """Velocity relative to the co-rotating atmosphere (m/s)."""
        return state.velocity - np.cross(primary_config.angular_velocity, state.position)

    def drag(self, primary_config: ObjectConfig, properties: AtmosphericProperties,
             state: ObjectState) -> np.ndarray:
        """
        Drag force (N) on a body with the given aerodynamic properties.

        Returns the zero vector outside the atmosphere.
        """
        if not self.inside(primary_config, state):
            return np.zeros(3)

        rho = self.density(self.altitude(primary_config, state))
        v_rel = self.relative_velocity(primary_config, state)
        return (-0.5 * rho * np.linalg.norm(v_rel) * v_rel
                * properties.drag_coefficient * properties.reference_area)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(limit={self.limit:.0f} m)"


class NoAtmosphere(AtmosphericModel):
    """Airless body: never inside, zero drag."""

    def __init__(self) -> None:
        super().__init__(limit=0.0)

    def density(self, altitude: float) -> float:
        return 0.0

    def inside(self, primary_config: ObjectConfig, state: ObjectState) -> bool:
        return False


class EarthAtmosphere(AtmosphericModel):
    """
    Layered model of the Earth's atmosphere.

    Temperature T (deg C) and pressure P (kPa) by altitude h (m):

        h < 11 km        T = 15.04 - 0.00649 h
                         P = 101.29 ((T + 273.1) / 288.08)^5.256
        11 km - 25 km    T = -56.46
                         P = 22.65 exp(1.73 - 0.000157 h)
        h > 25 km        T = -131.21 + 0.00299 h
                         P = 2.488 ((T + 273.1) / 216.6)^-11.388

    Density follows from the ideal gas law, rho = P / (0.2869 (T + 273.1)).
    """

    def __init__(self, limit: float = EARTH_ATMOSPHERE_LIMIT) -> None:
        super().__init__(limit=limit)

    @staticmethod
    def temperature_and_pressure(altitude: float):
        """Temperature (deg C) and pressure (kPa) at *altitude* (m)."""
        h = max(altitude, 0.0)
        if h < 11000.0:
            temperature = 15.04 - 0.00649 * h
            pressure = 101.29 * ((temperature + 273.1) / 288.08) ** 5.256
        elif h < 25000.0:
            temperature = -56.46
            pressure = 22.65 * np.exp(1.73 - 0.000157 * h)
        else:
            temperature = -131.21 + 0.00299 * h
            pressure = 2.488 * ((temperature + 273.1) / 216.6) ** -11.388
        return temperature, pressure

    def density(self, altitude: float) -> float:
        if altitude > self.limit:
            return 0.0
        temperature, pressure = self.temperature_and_pressure(altitude)
        return float(pressure / (0.2869 * (temperature + 273.1)))


class ExponentialAtmosphere(AtmosphericModel):
    """
    rho(h) = rho_0 * exp(-h / H), zero above the limit.

    Parameters
    ----------
    rho_0 : float
        Surface density (kg/m^3).
    scale_height : float
        Scale height H (m).
    limit : float
        Altitude above which the density is zero (m).
    """

    def __init__(self, rho_0: float = 1.225, scale_height: float = 8500.0,
                 limit: float = EARTH_ATMOSPHERE_LIMIT) -> None:
        super().__init__(limit=limit)
        self.rho_0 = rho_0
        self.scale_height = scale_height

    def density(self, altitude: float) -> float:
        if altitude > self.limit:
            return 0.0
        return float(self.rho_0 * np.exp(-max(altitude, 0.0) / self.scale_height))


def create_atmospheric_model(config) -> AtmosphericModel:
    """
    Build an atmosphere from a configuration mapping.

    ``None`` or ``{'model': 'none'}`` gives an airless body; ``'earth'`` the
    layered model; ``'exponential'`` reads rho_0, scale_height and limit.
    """
    if not config:
        return NoAtmosphere()
    model = config.get('model', 'none').lower()
    if model == 'none':
        return NoAtmosphere()
    if model == 'earth':
        return EarthAtmosphere(limit=config.get('limit_m', EARTH_ATMOSPHERE_LIMIT))
    if model == 'exponential':
        return ExponentialAtmosphere(
            rho_0=config.get('rho_0', 1.225),
            scale_height=config.get('scale_height_m', 8500.0),
            limit=config.get('limit_m', EARTH_ATMOSPHERE_LIMIT),
        )
    raise ValueError(f"Unknown atmospheric model: {model}")
