"""
Block Decomposition and Parallel Rasterization

Splits an output region into blocks and materializes them concurrently.
Blocks of a correlator view share no mutable state, so they can run on any
number of worker threads.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Tuple

from tqdm import tqdm

from .data_models import BBox
from .disparity.disparity_map import DisparityMap
from .exceptions import ArgumentError

logger = logging.getLogger(__name__)


def image_blocks(bbox: BBox, block_cols: int, block_rows: int) -> List[BBox]:
    """
    Row-major blocks covering ``bbox``; blocks on the right and bottom edges are clipped.

    Args:
        bbox: Region to cover
        block_cols: Block width
        block_rows: Block height

    Returns:
        List of non-overlapping blocks
    """
    if block_cols < 1 or block_rows < 1:
        raise ArgumentError(f"Block size must be positive, got {block_cols}x{block_rows}")
    blocks = []
    for y in range(bbox.min_y, bbox.max_y, block_rows):
        for x in range(bbox.min_x, bbox.max_x, block_cols):
            blocks.append(BBox(x, y, min(x + block_cols, bbox.max_x), min(y + block_rows, bbox.max_y)))
    return blocks


def rasterize_disparity(view,
                        bbox: Optional[BBox] = None,
                        block_size: Tuple[int, int] = (256, 256),
                        num_workers: Optional[int] = None,
                        progress: bool = False) -> DisparityMap:
    """
    Materialize a disparity view block by block into one map.

    Args:
        view: View whose ``materialize_disparity`` returns a DisparityMap
        bbox: Region to rasterize, the whole view by default
        block_size: (cols, rows) of each block
        num_workers: Worker threads, defaults to the CPU count
        progress: Show a tqdm progress bar

    Returns:
        DisparityMap of ``bbox``'s size
    """
    bbox = bbox or view.bbox
    blocks = image_blocks(bbox, block_size[0], block_size[1])
    workers = num_workers or os.cpu_count() or 1
    if workers < 1:
        raise ArgumentError("Number of workers must be positive")
    logger.info(f"Rasterizing {bbox.width}x{bbox.height} region in {len(blocks)} blocks "
                f"with {workers} workers")

    result = DisparityMap.allocate(bbox.width, bbox.height)
    with ThreadPoolExecutor(max_workers=workers) as pool:
        tiles = pool.map(view.materialize_disparity, blocks)
        for block, tile in tqdm(zip(blocks, tiles), total=len(blocks), desc="Correlating",
                                disable=not progress):
            result.paste(tile, block.min_x - bbox.min_x, block.min_y - bbox.min_y)

    logger.info(f"Rasterized {result.valid_count()}/{bbox.width * bbox.height} valid pixels")
    return result
