import math
from dataclasses import dataclass
from typing import Optional


@dataclass(slots=True, frozen=True)
class GazeVector:
    """
    A gaze direction in the host's right-handed view space.

    Unit length by convention. The ingestion layer never re-normalizes it;
    vectors with NaN or infinite components are rejected before they are published.
    """
    x: float
    y: float
    z: float

    def is_finite(self) -> bool:
        return math.isfinite(self.x) and math.isfinite(self.y) and math.isfinite(self.z)

    def as_tuple(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)


@dataclass(slots=True, frozen=True)
class RawEyeSample:
    """
    Per-eye reading as decoded from a wire protocol.

    Depending on the backend either `direction` (a 3D vector in the source's
    convention) or the `pitch_deg`/`yaw_deg` pair is populated. Lives only
    inside a codec or ingestion loop.
    """
    valid: bool
    direction: Optional[tuple[float, float, float]] = None
    pitch_deg: Optional[float] = None
    yaw_deg: Optional[float] = None


def average_directions(
    left: tuple[float, float, float],
    right: tuple[float, float, float],
    invert_x: bool = False,
    invert_z: bool = False,
) -> GazeVector:
    """Component-wise average of two eye directions, optionally sign-flipping axes."""
    x = (left[0] + right[0]) / 2
    y = (left[1] + right[1]) / 2
    z = (left[2] + right[2]) / 2
    return GazeVector(
        x=-x if invert_x else x,
        y=y,
        z=-z if invert_z else z,
    )
