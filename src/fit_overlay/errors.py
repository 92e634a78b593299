"""Errors raised while building a telemetry series or aligning frames to it."""

from __future__ import annotations


class AlignmentError(Exception):
    """Base class for series/alignment precondition violations."""


class EmptySeriesError(AlignmentError, ValueError):
    pass


class MissingTimestampError(AlignmentError, ValueError):
    pass


class NonMonotonicSeriesError(AlignmentError, ValueError):
    pass


class SeriesTooShortError(AlignmentError, ValueError):
    pass


class IndexOutOfRangeError(AlignmentError, IndexError):
    pass


class SeriesExhaustedError(AlignmentError, ValueError):
    """A frame was queried before the first telemetry sample."""


class FrameOrderError(AlignmentError, ValueError):
    """Frame times went backwards."""
