"""Seeded random generator streams, one per run or replicate."""

import zlib
from typing import Union

from numpy.random import Generator, PCG64, SeedSequence


def make_rng(seed: int, stream: Union[int, str] = 0) -> Generator:
    """Create an independent generator from a common seed and a stream tag.

    Replicates of one configuration share ``seed`` and differ by ``stream``
    (usually the replicate index). String tags are hashed with crc32 so the
    stream is stable across interpreter runs.
    """
    if isinstance(stream, str):
        key = zlib.crc32(stream.encode("utf-8"))
    else:
        key = int(stream)
    ss = SeedSequence(seed, spawn_key=[key & 0xffffffff])
    return Generator(PCG64(ss))
