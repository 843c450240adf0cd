from typing import List
from hlsd.domain.models import Rendition

# Standard 16:9 renditions, ascending by height
STANDARD_RENDITIONS: List[Rendition] = [
    Rendition(width=426, height=240, bitrate="500k", bufsize="1M"),
    Rendition(width=640, height=360, bitrate="1M", bufsize="2M"),
    Rendition(width=854, height=480, bitrate="2M", bufsize="4M"),
    Rendition(width=1280, height=720, bitrate="3M", bufsize="6M"),
    Rendition(width=1920, height=1080, bitrate="5M", bufsize="10M"),
]


def max_rendition_index(source_height: int, table: List[Rendition] = STANDARD_RENDITIONS) -> int:
    """Highest index whose height is <= source_height (inclusive), never below 0."""
    index = len(table) - 1
    while index > 0 and source_height < table[index].height:
        index -= 1
    return index


def plan_ladder(source_height: int, table: List[Rendition] = STANDARD_RENDITIONS) -> List[Rendition]:
    """Renditions to encode for a source of the given height.

    Sources smaller than the first rung still get it, so the ladder is never empty.
    """
    if not table:
        raise ValueError("Rendition table is empty")
    return list(table[:max_rendition_index(source_height, table) + 1])
