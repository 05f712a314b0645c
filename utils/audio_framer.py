"""
Audio framing for synthesized narration.

Gemini TTS returns headerless 24kHz / 16-bit / mono little-endian PCM. Players
need a container, so the samples are wrapped in the canonical 44-byte
RIFF/WAVE header without touching the payload.
"""

import base64
import struct
from dataclasses import dataclass

from utils.constants import (
    PCM_BITS_PER_SAMPLE,
    PCM_BYTES_PER_SECOND,
    PCM_CHANNELS,
    PCM_SAMPLE_RATE,
)

WAV_HEADER_SIZE = 44

# RIFF chunk + fmt chunk (16-byte PCM descriptor) + data chunk header
_HEADER_STRUCT = struct.Struct("<4sI4s4sIHHIIHH4sI")
_PCM_FORMAT_TAG = 1


@dataclass
class WavFormat:
    """Format fields read back from a WAV header."""
    channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    data_length: int


def frame_pcm(pcm: bytes) -> bytes:
    """Wrap raw PCM samples in a 44-byte WAV header."""
    block_align = PCM_CHANNELS * (PCM_BITS_PER_SAMPLE // 8)
    header = _HEADER_STRUCT.pack(
        b"RIFF",
        WAV_HEADER_SIZE + len(pcm) - 8,
        b"WAVE",
        b"fmt ",
        16,
        _PCM_FORMAT_TAG,
        PCM_CHANNELS,
        PCM_SAMPLE_RATE,
        PCM_BYTES_PER_SECOND,
        block_align,
        PCM_BITS_PER_SAMPLE,
        b"data",
        len(pcm),
    )
    return header + bytes(pcm)


def read_wav_format(data: bytes) -> WavFormat:
    """Parse the header written by :func:`frame_pcm`."""
    if len(data) < WAV_HEADER_SIZE:
        raise ValueError(f"WAV data too short: {len(data)} bytes")

    (riff, _size, wave, fmt, fmt_size, tag, channels, sample_rate,
     byte_rate, block_align, bits, data_id, data_length) = _HEADER_STRUCT.unpack_from(data)

    if riff != b"RIFF" or wave != b"WAVE" or fmt != b"fmt " or data_id != b"data":
        raise ValueError("Not a canonical PCM WAV header")
    if fmt_size != 16 or tag != _PCM_FORMAT_TAG:
        raise ValueError(f"Unsupported WAV format (fmt size {fmt_size}, tag {tag})")

    return WavFormat(
        channels=channels,
        sample_rate=sample_rate,
        byte_rate=byte_rate,
        block_align=block_align,
        bits_per_sample=bits,
        data_length=data_length,
    )


def pcm_duration_sec(pcm_length: int) -> float:
    return pcm_length / PCM_BYTES_PER_SECOND


def reported_duration_sec(pcm_length: int) -> int:
    """Duration rounded to whole seconds, as shown to clients."""
    return int(pcm_duration_sec(pcm_length) + 0.5)


def pcm_base64_to_wav_data_url(pcm_base64: str) -> tuple:
    """
    Decode base64 PCM and frame it.

    Returns:
        (data URL of the WAV file, PCM byte length)
    """
    pcm = base64.b64decode(pcm_base64)
    wav = frame_pcm(pcm)
    data_url = "data:audio/wav;base64," + base64.b64encode(wav).decode("ascii")
    return data_url, len(pcm)
