"""
Pixel Format and Channel Type Descriptions

Runtime tags describing how the channels of a pixel are laid out and which
numeric type each channel uses.
"""

from enum import Enum
from typing import Union

import numpy as np

from ..exceptions import ArgumentError


class PixelFormat(Enum):
    """Channel layout of a pixel."""
    UNKNOWN = 'unknown'
    SCALAR = 'scalar'
    GRAY = 'gray'
    GRAYA = 'graya'
    RGB = 'rgb'
    RGBA = 'rgba'
    DISPARITY = 'disparity'  # h, v, missing flag

    def num_channels(self) -> int:
        """Number of channels per pixel, 0 for UNKNOWN."""
        return _NUM_CHANNELS[self]

    @property
    def has_alpha(self) -> bool:
        return self in (PixelFormat.GRAYA, PixelFormat.RGBA)

    @classmethod
    def for_channel_count(cls, channels: int) -> 'PixelFormat':
        """Default layout for an array with the given channel count."""
        try:
            return {1: cls.GRAY, 2: cls.GRAYA, 3: cls.RGB, 4: cls.RGBA}[channels]
        except KeyError:
            raise ArgumentError(f"No default pixel format for {channels} channels")


_NUM_CHANNELS = {
    PixelFormat.UNKNOWN: 0,
    PixelFormat.SCALAR: 1,
    PixelFormat.GRAY: 1,
    PixelFormat.GRAYA: 2,
    PixelFormat.RGB: 3,
    PixelFormat.RGBA: 4,
    PixelFormat.DISPARITY: 3,
}


class ChannelType(Enum):
    """Numeric type of a single channel."""
    UNKNOWN = 'unknown'
    INT8 = 'int8'
    UINT8 = 'uint8'
    INT16 = 'int16'
    UINT16 = 'uint16'
    INT32 = 'int32'
    UINT32 = 'uint32'
    FLOAT32 = 'float32'
    FLOAT64 = 'float64'

    @property
    def dtype(self) -> np.dtype:
        if self is ChannelType.UNKNOWN:
            raise ArgumentError("Unknown channel type has no numpy dtype")
        return np.dtype(self.value)

    @property
    def is_integer(self) -> bool:
        return self not in (ChannelType.FLOAT32, ChannelType.FLOAT64, ChannelType.UNKNOWN)

    def channel_size(self) -> int:
        """Size of one channel in bytes, 0 for UNKNOWN."""
        if self is ChannelType.UNKNOWN:
            return 0
        return self.dtype.itemsize

    def range_max(self) -> float:
        """Natural maximum of the channel: the integer max, or 1.0 for floats."""
        if self.is_integer:
            return float(np.iinfo(self.dtype).max)
        return 1.0

    def limits(self):
        """(min, max) representable values, used for clamping."""
        if self.is_integer:
            info = np.iinfo(self.dtype)
            return float(info.min), float(info.max)
        info = np.finfo(self.dtype)
        return float(info.min), float(info.max)

    @classmethod
    def from_dtype(cls, dtype: Union[np.dtype, type, str]) -> 'ChannelType':
        name = np.dtype(dtype).name
        try:
            return cls(name)
        except ValueError:
            raise ArgumentError(f"Unsupported channel dtype: {name}")


def simple_conversion(src, dst) -> bool:
    """True when converting between two tags needs no per-value work."""
    return src == dst
