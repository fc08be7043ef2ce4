"""
Image Preprocessing Module

Filters applied to both images before window matching.
"""

from .filters import (
    NullFilter, BlurFilter, LogFilter, SlogFilter, NormalizeFilter, ClaheFilter,
    create_filter, filter_from_config
)

__all__ = ['NullFilter', 'BlurFilter', 'LogFilter', 'SlogFilter', 'NormalizeFilter',
           'ClaheFilter', 'create_filter', 'filter_from_config']
