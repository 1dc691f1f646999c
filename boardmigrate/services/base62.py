"""Base62 codec used to de-obfuscate embedded upload references.

Values are plain Python integers, so content hashes wider than 64 bits decode
without loss.
"""

from ..errors import Base62DecodeError

ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
BASE = len(ALPHABET)

_DIGITS = {char: index for index, char in enumerate(ALPHABET)}

# SHA-1 digests are 160 bits wide, rendered as 40 hex digits.
SHA1_HEX_LENGTH = 40


def decode(token: str) -> int:
    """
    Decode a Base62 token, most significant digit first.

    Raises:
        Base62DecodeError: if the token is empty or contains a character
            outside the alphabet
    """
    if not token:
        raise Base62DecodeError("Cannot decode an empty Base62 token")

    value = 0
    for position, char in enumerate(token):
        digit = _DIGITS.get(char)
        if digit is None:
            raise Base62DecodeError(
                f"Invalid Base62 character {char!r} at position {position} in {token!r}"
            )
        value = value * BASE + digit
    return value


def encode(value: int) -> str:
    """Encode a non-negative integer as a Base62 token."""
    if value < 0:
        raise ValueError(f"Cannot Base62-encode negative value {value}")
    if value == 0:
        return ALPHABET[0]

    digits = []
    while value:
        value, remainder = divmod(value, BASE)
        digits.append(ALPHABET[remainder])
    return "".join(reversed(digits))


def decode_sha1(token: str) -> str:
    """
    Decode a token into a zero-padded 40 digit hex SHA-1 digest.

    Raises:
        Base62DecodeError: if the token is malformed or does not fit in 160 bits
    """
    value = decode(token)
    digest = format(value, "x")
    if len(digest) > SHA1_HEX_LENGTH:
        raise Base62DecodeError(f"Token {token!r} does not decode to a SHA-1 digest")
    return digest.rjust(SHA1_HEX_LENGTH, "0")
