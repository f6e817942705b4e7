"""Protocol layer: binary and text codecs, stream framing."""

from .binary import BinaryCodec
from .text import TextCodec
from .framing import FrameBuffer, encode_frame
