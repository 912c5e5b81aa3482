"""Parameter checks shared by the material registries."""

import math

from ..errors import ConstructionError


def validate_color(color, name: str = "Color") -> None:
    """Require three finite, non-negative components.

    Raises:
        ConstructionError: If the color is malformed.
    """
    if len(color) != 3:
        raise ConstructionError(f"{name} must have 3 components, got {len(color)}")
    for i, component in enumerate(color):
        if not math.isfinite(component) or component < 0.0:
            raise ConstructionError(
                f"{name} component {i} = {component} must be finite and non-negative"
            )


def validate_albedo(albedo, name: str = "Albedo") -> None:
    """Require three components in [0, 1].

    Raises:
        ConstructionError: If a component is outside [0, 1], which would
            violate energy conservation.
    """
    validate_color(albedo, name)
    for i, component in enumerate(albedo):
        if component > 1.0:
            raise ConstructionError(
                f"{name} component {i} = {component} is outside [0, 1]. "
                "This would violate energy conservation."
            )


def validate_unit_interval(value: float, name: str) -> None:
    if not math.isfinite(value) or value < 0.0 or value > 1.0:
        raise ConstructionError(f"{name} must be in [0, 1], got {value}")
