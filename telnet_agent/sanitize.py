"""Display helpers for text received from a remote session.

Sessions pass received lines through untouched; stripping control characters
is the display layer's job and lives here.
"""

from __future__ import annotations

from re import compile as re_compile

# C0 controls, DEL and the Unicode replacement character left by bad decoding
NON_PRINTABLE = re_compile("[\x00-\x1f\x7f�]+")


def trim_non_printable(text: str) -> str:
    """Remove control characters and replacement characters from text.

    Returns:
        The text with every run of non-printable characters removed
    """
    return NON_PRINTABLE.sub("", text)
