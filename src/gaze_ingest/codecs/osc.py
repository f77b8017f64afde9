import math
from typing import Final, Sequence

from ..errors import MalformedMessage
from ..models import GazeVector, RawEyeSample, average_directions

EYE_PITCH_YAW_ADDRESS: Final[str] = "/tracking/eye/LeftRightPitchYaw"


def decode_pitch_yaw(args: Sequence[object]) -> tuple[RawEyeSample, RawEyeSample]:
    """
    Decodes the arguments of a LeftRightPitchYaw message.

    Expects exactly four floats in the order leftPitch, leftYaw, rightPitch,
    rightYaw, all in degrees. A NaN angle marks that eye invalid; an infinite
    angle is never a reading and fails the whole message.
    """
    if len(args) != 4:
        raise MalformedMessage(f"Expected 4 arguments, got {len(args)}.")
    if not all(isinstance(a, float) for a in args):
        types = ", ".join(type(a).__name__ for a in args)
        raise MalformedMessage(f"Expected 4 float arguments, got ({types}).")
    if any(math.isinf(a) for a in args):
        raise MalformedMessage("Pitch/yaw sample contains non-finite angles.")

    left_pitch, left_yaw, right_pitch, right_yaw = args
    return (
        RawEyeSample(
            valid=not (math.isnan(left_pitch) or math.isnan(left_yaw)),
            pitch_deg=left_pitch,
            yaw_deg=left_yaw,
        ),
        RawEyeSample(
            valid=not (math.isnan(right_pitch) or math.isnan(right_yaw)),
            pitch_deg=right_pitch,
            yaw_deg=right_yaw,
        ),
    )


def eye_direction(pitch_deg: float, yaw_deg: float) -> tuple[float, float, float]:
    # Pitch is positive looking down on the wire, up in view space.
    pitch = -math.radians(pitch_deg)
    yaw = math.radians(yaw_deg)
    return (
        math.sin(yaw) * math.cos(pitch),
        math.sin(pitch),
        -math.cos(yaw) * math.cos(pitch),
    )


def to_gaze_vector(left: RawEyeSample, right: RawEyeSample) -> GazeVector:
    """Averages both eyes' directions. Raises MalformedMessage if either eye is invalid."""
    if not (left.valid and right.valid):
        raise MalformedMessage("Pitch/yaw sample contains NaN angles.")
    return average_directions(
        eye_direction(left.pitch_deg, left.yaw_deg),
        eye_direction(right.pitch_deg, right.yaw_deg),
    )
