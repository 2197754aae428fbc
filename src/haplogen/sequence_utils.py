"""
Sequence manipulation utilities for haplogen.

This module provides the mutable per-chromosome buffer used by the editing
engine and the string helpers shared by the editor and the FASTA writer.
"""

from .core import PLACEHOLDER, FASTA_LINE_WIDTH


def rc_str(seq):
    """
    Reverse complement a nucleotide string.

    Case is preserved; anything other than A, C, G and T (including the
    placeholder) is left as is.

    Args:
        seq: A string of nucleotides

    Returns:
        The reverse complement string
    """
    t = str.maketrans("ACGTacgt", "TGCAtgca")
    return seq.translate(t)[::-1]


def strip_placeholders(seq, placeholder=PLACEHOLDER):
    """Remove every placeholder character from a sequence string."""
    return seq.replace(placeholder, "")


def wrap_sequence(seq, width=FASTA_LINE_WIDTH):
    """
    Split a sequence into lines of at most ``width`` characters.

    Args:
        seq: Sequence string
        width: Maximum line length

    Returns:
        List of lines (empty for an empty sequence)
    """
    if width <= 0:
        raise ValueError(f"Line width must be positive, got {width}")
    return [seq[i : i + width] for i in range(0, len(seq), width)]


class SequenceBuffer:
    """
    Growable, indexed sequence of bases for one chromosome of one haplotype.

    All edits go through ``replace_range``; the buffer never removes bases on
    its own, deletions are expressed by writing placeholders.
    """

    def __init__(self, sequence=""):
        if isinstance(sequence, (bytes, bytearray)):
            self._data = bytearray(sequence)
        else:
            self._data = bytearray(str(sequence).encode())

    def __len__(self):
        return len(self._data)

    def __str__(self):
        return self._data.decode()

    def __repr__(self):
        return f"SequenceBuffer(length={len(self._data)})"

    def __eq__(self, other):
        if isinstance(other, SequenceBuffer):
            return self._data == other._data
        if isinstance(other, str):
            return str(self) == other
        return NotImplemented

    def _check_range(self, start: int, length: int) -> None:
        if length < 0:
            raise IndexError(f"Negative length {length} at position {start}")
        if start < 0 or start > len(self._data):
            raise IndexError(
                f"Start {start} outside buffer of length {len(self._data)}"
            )

    def read(self, start: int, length: int) -> str:
        """Return ``length`` bases starting at ``start`` (clipped at the end)."""
        self._check_range(start, length)
        return self._data[start : start + length].decode()

    def replace_range(self, start: int, length: int, content: str) -> int:
        """
        Replace ``[start, start+length)`` with ``content``.

        Args:
            start: 0-based start of the replaced interval
            length: Number of bases replaced (may run past the end, in which
                    case only the remaining bases are replaced)
            content: New bases

        Returns:
            Net change in buffer length
        """
        self._check_range(start, length)
        before = len(self._data)
        self._data[start : start + length] = content.encode()
        return len(self._data) - before

    def copy(self):
        return SequenceBuffer(bytes(self._data))
