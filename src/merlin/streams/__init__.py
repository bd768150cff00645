"""Pipeline streams returned by model operations."""

from merlin.streams.base import Stream, close_iterator
from merlin.streams.count_stream import CountStream
from merlin.streams.model_stream import ModelStream, Terminal
from merlin.streams.populate_stream import PopulateStream

__all__ = [
    "CountStream",
    "ModelStream",
    "PopulateStream",
    "Stream",
    "Terminal",
    "close_iterator",
]
