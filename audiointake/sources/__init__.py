__all__ = [
    "SampleChunkSource",
    "DecodedSampleSource",
    "QueueSampleSource",
    "ContinuousSampleSource",
]

from audiointake.sources.base import SampleChunkSource
from audiointake.sources.continuous import ContinuousSampleSource
from audiointake.sources.decoded import DecodedSampleSource
from audiointake.sources.queued import QueueSampleSource
