from .gaze import GazeVector, RawEyeSample, average_directions

__all__ = ["GazeVector", "RawEyeSample", "average_directions"]
