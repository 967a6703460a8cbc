"""
Failure kinds surfaced by receipt analysis.

Only whole-call failures are exceptions. A missing field, an unparsable date
or a non-numeric token is absorbed as an absent value in the result.
"""


class AnalysisError(Exception):
    """Base class for terminal failures of one analysis call."""
    pass


class ImageProcessingFailure(AnalysisError):
    """The image could not be decoded or prepared for recognition."""
    pass


class RecognitionFailure(AnalysisError):
    """The text-recognition engine is unavailable or reported an error."""
    pass


class ParsingFailure(AnalysisError):
    """No usable fragments remained after normalization."""
    pass
