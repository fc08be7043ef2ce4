"""
Data Models for the Stereo Correlation Engine

Defines the value types shared by the image views and the correlator.
"""

import math
from dataclasses import dataclass, field, replace
from typing import Tuple, Sequence, Dict, Any, Optional

from .exceptions import ArgumentError


@dataclass(frozen=True)
class BBox:
    """Axis-aligned integer rectangle. ``max`` corners are exclusive."""
    min_x: int
    min_y: int
    max_x: int
    max_y: int

    def __post_init__(self):
        if self.max_x < self.min_x or self.max_y < self.min_y:
            raise ArgumentError(f"Invalid bounding box: min=({self.min_x}, {self.min_y}) "
                                f"max=({self.max_x}, {self.max_y})")

    @classmethod
    def from_size(cls, x: int, y: int, width: int, height: int) -> 'BBox':
        return cls(x, y, x + width, y + height)

    @property
    def width(self) -> int:
        return self.max_x - self.min_x

    @property
    def height(self) -> int:
        return self.max_y - self.min_y

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height)"""
        return self.width, self.height

    @property
    def empty(self) -> bool:
        return self.width == 0 or self.height == 0

    def translated(self, dx: int, dy: int) -> 'BBox':
        return BBox(self.min_x + dx, self.min_y + dy, self.max_x + dx, self.max_y + dy)

    def expanded(self, dx: int, dy: int) -> 'BBox':
        """Grow the box outward by ``dx`` columns and ``dy`` rows on every side."""
        return BBox(self.min_x - dx, self.min_y - dy, self.max_x + dx, self.max_y + dy)

    def intersection(self, other: 'BBox') -> 'BBox':
        """Overlap of two boxes; an empty box anchored inside ``self`` when disjoint."""
        min_x = max(self.min_x, other.min_x)
        min_y = max(self.min_y, other.min_y)
        max_x = min(self.max_x, other.max_x)
        max_y = min(self.max_y, other.max_y)
        if max_x <= min_x or max_y <= min_y:
            return BBox(self.min_x, self.min_y, self.min_x, self.min_y)
        return BBox(min_x, min_y, max_x, max_y)

    def contains(self, other: 'BBox') -> bool:
        return (self.min_x <= other.min_x and self.min_y <= other.min_y and
                other.max_x <= self.max_x and other.max_y <= self.max_y)

    def to_slices(self) -> Tuple[slice, slice]:
        """(row slice, column slice) for numpy indexing."""
        return slice(self.min_y, self.max_y), slice(self.min_x, self.max_x)

    def __str__(self) -> str:
        return f"({self.min_x}, {self.min_y}) -> ({self.max_x}, {self.max_y})"


@dataclass(frozen=True)
class SearchRange:
    """Inclusive limits of the horizontal and vertical disparity search."""
    min_h: int
    min_v: int
    max_h: int
    max_v: int

    def __post_init__(self):
        if self.max_h < self.min_h or self.max_v < self.min_v:
            raise ArgumentError(f"Invalid search range: h [{self.min_h}, {self.max_h}] "
                                f"v [{self.min_v}, {self.max_v}]")

    @classmethod
    def from_sequence(cls, values: Sequence[int]) -> 'SearchRange':
        if len(values) != 4:
            raise ArgumentError("Search range needs four integers: min_h min_v max_h max_v")
        return cls(*(int(v) for v in values))

    @property
    def width(self) -> int:
        return self.max_h - self.min_h

    @property
    def height(self) -> int:
        return self.max_v - self.min_v

    def translated(self, dh: int, dv: int) -> 'SearchRange':
        return SearchRange(self.min_h + dh, self.min_v + dv, self.max_h + dh, self.max_v + dv)

    def negated(self) -> 'SearchRange':
        """Range for matching with left and right roles swapped."""
        return SearchRange(-self.max_h, -self.max_v, -self.min_h, -self.min_v)

    def scaled_down(self, levels: int) -> 'SearchRange':
        """Range at a pyramid level ``levels`` halvings coarser; always covers this one."""
        factor = 2 ** levels
        return SearchRange(math.floor(self.min_h / factor), math.floor(self.min_v / factor),
                           math.ceil(self.max_h / factor), math.ceil(self.max_v / factor))

    def contains(self, h: int, v: int) -> bool:
        return self.min_h <= h <= self.max_h and self.min_v <= v <= self.max_v

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return self.min_h, self.min_v, self.max_h, self.max_v

    def __str__(self) -> str:
        return f"h [{self.min_h}, {self.max_h}] v [{self.min_v}, {self.max_v}]"


@dataclass(frozen=True)
class DisparityValue:
    """A single disparity pixel. Offsets are meaningless when ``valid`` is False."""
    h: float
    v: float
    valid: bool
    score: Optional[float] = None


COST_METRICS = ('absolute_difference', 'squared_difference', 'ncc')
EDGE_EXTENSION_MODES = ('zero', 'constant', 'nearest', 'reflect', 'periodic')


@dataclass(frozen=True)
class CorrelatorSettings:
    """Immutable snapshot of the correlator configuration surface."""
    search_range: SearchRange = field(default_factory=lambda: SearchRange(-50, -50, 50, 50))
    kernel_size: Tuple[int, int] = (24, 24)  # half-width, half-height
    do_h_subpixel: bool = True
    do_v_subpixel: bool = True
    do_affine_subpixel: bool = False
    cross_corr_threshold: float = 2.0
    corr_score_threshold: float = 1.3
    debug_prefix: str = ''
    cost_metric: str = 'absolute_difference'
    refinement_radius: int = 2
    max_coarse_search: int = 8
    min_pyramid_levels: int = 0
    edge_extension: str = 'zero'
    affine_iterations: int = 10

    def validate(self) -> None:
        """Raise ArgumentError when the settings cannot be used for correlation."""
        kx, ky = self.kernel_size
        if kx < 1 or ky < 1:
            raise ArgumentError(f"Kernel size must be positive, got {self.kernel_size}")
        if self.cross_corr_threshold < 0:
            raise ArgumentError("Cross-correlation threshold must be non-negative")
        if self.corr_score_threshold < 0:
            raise ArgumentError("Correlation score threshold must be non-negative")
        if self.cost_metric not in COST_METRICS:
            raise ArgumentError(f"Unknown cost metric '{self.cost_metric}', expected one of {COST_METRICS}")
        if self.edge_extension not in EDGE_EXTENSION_MODES:
            raise ArgumentError(f"Unknown edge extension '{self.edge_extension}'")
        if self.refinement_radius < 1:
            raise ArgumentError("Refinement radius must be at least 1")
        if self.max_coarse_search < 1:
            raise ArgumentError("max_coarse_search must be at least 1")
        if self.min_pyramid_levels < 0:
            raise ArgumentError("min_pyramid_levels must be non-negative")

    def updated(self, **changes) -> 'CorrelatorSettings':
        return replace(self, **changes)

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> 'CorrelatorSettings':
        """
        Build settings from a configuration section.

        Args:
            params: Dictionary as returned by ConfigManager.get_correlator_params()

        Returns:
            Validated settings; missing keys keep their defaults
        """
        defaults = cls()
        search = params.get('search_range')
        kernel = params.get('kernel_size', defaults.kernel_size)
        settings = cls(
            search_range=SearchRange.from_sequence(search) if search is not None else defaults.search_range,
            kernel_size=(int(kernel[0]), int(kernel[1])),
            do_h_subpixel=bool(params.get('h_subpixel', defaults.do_h_subpixel)),
            do_v_subpixel=bool(params.get('v_subpixel', defaults.do_v_subpixel)),
            do_affine_subpixel=bool(params.get('affine_subpixel', defaults.do_affine_subpixel)),
            cross_corr_threshold=float(params.get('cross_corr_threshold', defaults.cross_corr_threshold)),
            corr_score_threshold=float(params.get('corr_score_threshold', defaults.corr_score_threshold)),
            debug_prefix=params.get('debug_prefix') or '',
            cost_metric=params.get('cost_metric', defaults.cost_metric),
            refinement_radius=int(params.get('refinement_radius', defaults.refinement_radius)),
            max_coarse_search=int(params.get('max_coarse_search', defaults.max_coarse_search)),
            min_pyramid_levels=int(params.get('min_pyramid_levels', defaults.min_pyramid_levels)),
            edge_extension=params.get('edge_extension', defaults.edge_extension),
            affine_iterations=int(params.get('affine_iterations', defaults.affine_iterations)),
        )
        settings.validate()
        return settings

    @classmethod
    def from_config(cls, config_manager) -> 'CorrelatorSettings':
        return cls.from_params(config_manager.get_correlator_params())
