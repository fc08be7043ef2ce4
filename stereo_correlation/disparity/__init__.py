"""
Disparity Estimation Module

Coarse-to-fine window correlation with left-right consistency checking,
ambiguity rejection and subpixel refinement.
"""

from .disparity_map import DisparityMap
from .window_matcher import WindowMatcher, SearchResult
from .consistency import LRCValidator
from .subpixel import parabola_offsets, refine_parabolic, refine_affine
from .diagnostics import DiagnosticsSink, DebugImageWriter, MemoryDiagnostics, create_disparity_visualization
from .pyramid_correlator import PyramidCorrelator
from .correlator_view import CorrelatorView

__all__ = [
    'DisparityMap', 'WindowMatcher', 'SearchResult', 'LRCValidator',
    'parabola_offsets', 'refine_parabolic', 'refine_affine',
    'DiagnosticsSink', 'DebugImageWriter', 'MemoryDiagnostics', 'create_disparity_visualization',
    'PyramidCorrelator', 'CorrelatorView'
]
