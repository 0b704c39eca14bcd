"""
CRC-16 and byte stuffing for SSP frames.

CRC uses polynomial 0x8005 with seed 0xFFFF, no reflection, and is sent
low byte first. It covers SEQ/ID, LEN and DATA but not the STX byte.
"""

import struct

from .constants import CRC_POLYNOMIAL, CRC_SEED, STX


def calculate_crc16(data: bytes) -> bytes:
    """
    Calculate the SSP CRC-16 of data.

    Args:
        data: Bytes to checksum.

    Returns:
        2 bytes, little-endian.
    """
    crc = CRC_SEED
    for byte in data:
        crc ^= byte << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = (crc << 1) ^ CRC_POLYNOMIAL
            else:
                crc <<= 1
        crc &= 0xFFFF
    return struct.pack('<H', crc)


def verify_crc16(data: bytes) -> bool:
    """
    Verify a frame body whose last two bytes are its CRC.

    Args:
        data: SEQ/ID + LEN + DATA + CRC (unstuffed, without STX).
    """
    if len(data) < 4:
        return False
    return calculate_crc16(data[:-2]) == data[-2:]


def append_crc(data: bytes) -> bytes:
    """Append the CRC to data."""
    return data + calculate_crc16(data)


def stuff(data: bytes) -> bytes:
    """Double every STX byte."""
    return data.replace(bytes([STX]), bytes([STX, STX]))
