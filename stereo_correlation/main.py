"""
Main entry point for the stereo correlation engine

Correlates a rectified image pair tile by tile and writes the disparity map.
"""

import argparse
import logging
import sys
from pathlib import Path

import cv2

from stereo_correlation.data_models import CorrelatorSettings
from stereo_correlation.disparity.correlator_view import CorrelatorView
from stereo_correlation.disparity.diagnostics import create_disparity_visualization
from stereo_correlation.image.image_buffer import ImageBuffer, ImageFormat, convert
from stereo_correlation.image.image_view import BufferView
from stereo_correlation.image.pixel_types import PixelFormat
from stereo_correlation.image.resource import open_image, write_image
from stereo_correlation.preprocessing.filters import filter_from_config
from stereo_correlation.tiling import rasterize_disparity
from stereo_correlation.utils.config_manager import ConfigManager
from stereo_correlation.utils.logger_config import setup_logging_from_config


def load_gray_view(path: str):
    """Open an image file as a single-channel view, converting colour files to gray."""
    view = open_image(path)
    if view.channels == 1:
        return view
    color = view.materialize(view.bbox)
    gray = ImageBuffer.allocate(ImageFormat(color.cols, color.rows, 1, PixelFormat.GRAY, color.channel_type))
    convert(gray, color)
    return BufferView(gray)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Out-of-core multi-resolution stereo correlation"
    )

    parser.add_argument("left", type=str, help="Left image file")
    parser.add_argument("right", type=str, help="Right image file")

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration file"
    )

    parser.add_argument(
        "--output-prefix",
        type=str,
        default="output/result",
        help="Prefix of the output files"
    )

    parser.add_argument(
        "--search-range",
        type=int,
        nargs=4,
        metavar=("MIN_H", "MIN_V", "MAX_H", "MAX_V"),
        help="Inclusive disparity search range"
    )

    parser.add_argument(
        "--kernel-size",
        type=int,
        nargs=2,
        metavar=("KX", "KY"),
        help="Kernel half-width and half-height"
    )

    parser.add_argument(
        "--workers",
        type=int,
        help="Number of worker threads"
    )

    parser.add_argument(
        "--debug-prefix",
        type=str,
        help="Write per-level debug images with this prefix"
    )

    return parser


def main(argv=None):
    """Main entry point for the stereo correlation engine."""
    args = build_parser().parse_args(argv)

    # Load configuration
    try:
        config = ConfigManager(args.config)
        if args.search_range is not None:
            config.set('correlator.search_range', list(args.search_range))
        if args.kernel_size is not None:
            config.set('correlator.kernel_size', list(args.kernel_size))
        if args.workers is not None:
            config.set('tiling.num_workers', args.workers)
        if args.debug_prefix is not None:
            config.set('correlator.debug_prefix', args.debug_prefix)
        settings = CorrelatorSettings.from_config(config)
        preprocess = filter_from_config(config.get_preprocessing_params())
    except (ValueError, FileNotFoundError) as e:
        print(f"Error loading configuration: {e}")
        return 1

    setup_logging_from_config(config.get_logging_params())
    logger = logging.getLogger("stereo_correlation.main")
    logger.info(f"Loaded configuration from: {config.config_path}")

    for path in (args.left, args.right):
        if not Path(path).exists():
            print(f"Input image does not exist: {path}")
            return 1

    try:
        left = load_gray_view(args.left)
        right = load_gray_view(args.right)
        view = CorrelatorView(left, right, preprocess, settings=settings)
    except ValueError as e:
        print(f"Error loading input images: {e}")
        return 1

    logger.info(view.describe())
    tiling = config.get_tiling_params()
    disparity = rasterize_disparity(view,
                                    block_size=tuple(tiling.get('block_size', [256, 256])),
                                    num_workers=tiling.get('num_workers'),
                                    progress=tiling.get('progress', False))

    prefix = args.output_prefix
    Path(prefix).parent.mkdir(parents=True, exist_ok=True)
    write_image(f"{prefix}-D.tif", disparity.as_buffer())
    cv2.imwrite(f"{prefix}-H.png", create_disparity_visualization(disparity.h, disparity.valid))
    cv2.imwrite(f"{prefix}-V.png", create_disparity_visualization(disparity.v, disparity.valid))

    stats = disparity.statistics()
    print("Stereo Correlation")
    print("=" * 50)
    print(f"Image size: {disparity.cols}x{disparity.rows}")
    print(f"Valid pixels: {stats['valid_pixels']} ({stats['valid_pixel_ratio']:.1%})")
    print(f"Horizontal disparity: {stats['min_h']:.2f} .. {stats['max_h']:.2f}")
    print(f"Vertical disparity: {stats['min_v']:.2f} .. {stats['max_v']:.2f}")
    print(f"Disparity written to: {prefix}-D.tif")

    return 0


if __name__ == "__main__":
    sys.exit(main())
