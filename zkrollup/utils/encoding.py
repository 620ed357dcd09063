"""
Fixed-width integer encoding for digests and storage keys.
"""

WORD_SIZE = 32
UINT256_MAX = 2**256 - 1


def int_to_uint256(value: int) -> bytes:
    """Encode a non-negative integer as a 32-byte big-endian word."""
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"Expected int, got {type(value).__name__}")
    if value < 0 or value > UINT256_MAX:
        raise ValueError(f"Value out of uint256 range: {value}")
    return value.to_bytes(WORD_SIZE, 'big')

def uint256_to_int(word: bytes) -> int:
    """Decode a 32-byte big-endian word."""
    if len(word) != WORD_SIZE:
        raise ValueError(f"Expected {WORD_SIZE} bytes, got {len(word)}")
    return int.from_bytes(word, 'big')

def encode_packed(*values) -> bytes:
    """
    Tightly pack integers (as uint256 words) and raw byte strings.
    Byte strings are appended as-is, in order.
    """
    res = bytearray()
    for value in values:
        if isinstance(value, (bytes, bytearray)):
            res.extend(value)
        else:
            res.extend(int_to_uint256(value))
    return bytes(res)

def index_key(prefix: bytes, index: int) -> bytes:
    """Storage key for an integer-indexed table row."""
    return prefix + int_to_uint256(index)
