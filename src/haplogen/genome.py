"""
Genome loading and writing for haplogen.

This module provides the haplotype containers the engine edits, reference
loading (pyfaidx for plain FASTA, a streaming parser for compressed input),
transparent decompression of ``.gz``/``.bz2`` inputs and the FASTA writer.
"""

import os
import subprocess
from contextlib import contextmanager
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from pyfaidx import Fasta, FastaIndexingError

from .chromosome_utils import haplotype2_chromosomes
from .core import FASTA_LINE_WIDTH, PLACEHOLDER, FileAccessError
from .sequence_utils import SequenceBuffer, strip_placeholders, wrap_sequence

DECOMPRESSORS = {
    ".gz": ["gzip", "-dc"],
    ".bz2": ["bzip2", "-dc"],
}


def _decompression_command(path) -> Optional[List[str]]:
    for suffix, command in DECOMPRESSORS.items():
        if str(path).endswith(suffix):
            return command
    return None


def is_compressed(path) -> bool:
    """Whether ``path`` is read through an external decompressor."""
    return _decompression_command(path) is not None


@contextmanager
def open_text(path):
    """
    Open a text input, decompressing ``.gz`` and ``.bz2`` files on the fly.

    Compressed files are streamed through ``gzip -dc`` / ``bzip2 -dc``.

    Args:
        path: Input file path

    Yields:
        A text file object iterating over lines

    Raises:
        FileAccessError: If the file is missing, unreadable, or the
                         decompressor exits with an error
    """
    path = os.fspath(path)
    if not os.path.isfile(path):
        raise FileAccessError(f"Cannot open {path}: no such file")

    command = _decompression_command(path)
    if command is None:
        try:
            handle = open(path, "r")
        except OSError as e:
            raise FileAccessError(f"Cannot open {path}: {e}") from e
        with handle:
            yield handle
        return

    try:
        proc = subprocess.Popen(
            command + [path],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
    except OSError as e:
        raise FileAccessError(f"Cannot decompress {path} with {command[0]}: {e}") from e

    with proc:
        try:
            yield proc.stdout
        except BaseException:
            proc.kill()
            raise
        stderr = proc.stderr.read()
        returncode = proc.wait()

    if returncode != 0:
        raise FileAccessError(
            f"Cannot decompress {path}: {command[0]} exited with status "
            f"{returncode}: {stderr.strip()}"
        )


def parse_fasta_lines(lines: Iterable[str]) -> Dict[str, str]:
    """
    Parse FASTA lines into a name -> sequence dictionary.

    Records may be wrapped at any width (or not at all). The record name is
    the first whitespace-delimited token after '>'. A repeated name replaces
    the earlier record.

    Raises:
        FileAccessError: If sequence data appears before any header
    """
    sequences: Dict[str, List[str]] = {}
    name = None
    for line in lines:
        line = line.strip()
        if not line:
            continue
        if line.startswith(">"):
            fields = line[1:].split()
            name = fields[0] if fields else ""
            sequences[name] = []
        elif name is None:
            raise FileAccessError("Sequence data found before the first FASTA header")
        else:
            sequences[name].append(line)
    return {chrom: "".join(parts) for chrom, parts in sequences.items()}


def _read_fasta_file(path) -> Dict[str, str]:
    if not is_compressed(path):
        try:
            with Fasta(path) as fasta:
                return {chrom: str(record) for chrom, record in fasta.items()}
        except (FastaIndexingError, OSError, ValueError):
            # irregular wrapping, duplicate names or an unwritable .fai
            pass
    with open_text(path) as handle:
        return parse_fasta_lines(handle)


def load_reference(reference_fn: Union[str, os.PathLike, Mapping, Fasta]) -> Dict[str, str]:
    """
    Load a reference genome into an ordered name -> sequence dictionary.

    Args:
        reference_fn: Path to a FASTA file (optionally .gz/.bz2), a mapping of
                      name -> sequence, or an open pyfaidx.Fasta

    Returns:
        Dictionary preserving reference record order

    Raises:
        FileAccessError: If the file cannot be read or has no records
    """
    if isinstance(reference_fn, (str, os.PathLike)):
        path = os.fspath(reference_fn)
        if not os.path.isfile(path):
            raise FileAccessError(f"Cannot open reference {path}: no such file")
        sequences = _read_fasta_file(path)
        source = path
    else:
        sequences = {chrom: str(seq) for chrom, seq in reference_fn.items()}
        source = "in-memory reference"

    if not sequences:
        raise FileAccessError(f"No sequence records found in {source}")
    return sequences


class Haplotype:
    """
    One copy of the genome: chromosome name -> mutable ``SequenceBuffer``.

    Chromosome order is the reference order.
    """

    def __init__(self, sequences: Mapping[str, Union[str, SequenceBuffer]], name: str = "H1"):
        self.name = name
        self.buffers: Dict[str, SequenceBuffer] = {}
        for chrom, seq in sequences.items():
            if isinstance(seq, SequenceBuffer):
                self.buffers[chrom] = seq.copy()
            else:
                self.buffers[chrom] = SequenceBuffer(seq)

    def __contains__(self, chrom):
        return chrom in self.buffers

    def __getitem__(self, chrom) -> SequenceBuffer:
        return self.buffers[chrom]

    def __iter__(self) -> Iterator[str]:
        return iter(self.buffers)

    def __len__(self):
        return len(self.buffers)

    def __repr__(self):
        return f"Haplotype({self.name!r}, chromosomes={list(self.buffers)})"

    def keys(self):
        return self.buffers.keys()

    def items(self):
        return self.buffers.items()

    def copy(self, chromosomes: Optional[Iterable[str]] = None, name: Optional[str] = None):
        """Deep copy, optionally restricted to ``chromosomes``."""
        chroms = list(self.buffers) if chromosomes is None else list(chromosomes)
        return Haplotype({c: self.buffers[c] for c in chroms}, name=name or self.name)

    def snapshot(self) -> Mapping[str, str]:
        """Immutable copy of every chromosome as it is right now."""
        return MappingProxyType({chrom: str(buf) for chrom, buf in self.buffers.items()})

    def sequences(self, strip: bool = False, placeholder: str = PLACEHOLDER) -> Dict[str, str]:
        """
        Current sequences as strings.

        Args:
            strip: Remove placeholder characters
            placeholder: Placeholder character to remove
        """
        if strip:
            return {c: strip_placeholders(str(b), placeholder) for c, b in self.buffers.items()}
        return {c: str(b) for c, b in self.buffers.items()}


class Genome:
    """
    Haploid or diploid personal genome under construction.

    ``h2`` is None for a haploid genome.
    """

    def __init__(self, h1: Haplotype, h2: Optional[Haplotype] = None):
        self.h1 = h1
        self.h2 = h2

    @classmethod
    def from_reference(cls, reference_fn, diploid: bool = False, sex: str = "M") -> "Genome":
        """
        Load a reference and clone the second haplotype when diploid.

        The second haplotype holds all autosomes plus X (sex 'F') or Y (sex
        'M') and never the mitochondrial contig.
        """
        h1 = Haplotype(load_reference(reference_fn), name="H1")
        h2 = None
        if diploid:
            h2 = h1.copy(haplotype2_chromosomes(h1.keys(), sex), name="H2")
        return cls(h1, h2)

    @property
    def diploid(self) -> bool:
        return self.h2 is not None

    def haplotypes(self) -> List[Tuple[int, Haplotype]]:
        """(index, haplotype) pairs; index 1 for H1, 2 for H2."""
        pairs = [(1, self.h1)]
        if self.h2 is not None:
            pairs.append((2, self.h2))
        return pairs


def write_fasta(
    path,
    sequences: Union[Haplotype, Mapping[str, str]],
    line_width: int = FASTA_LINE_WIDTH,
    placeholder: str = PLACEHOLDER,
) -> None:
    """
    Write sequences as FASTA, removing placeholders and wrapping lines.

    Args:
        path: Output file path
        sequences: Haplotype or name -> sequence mapping
        line_width: Maximum sequence line length
        placeholder: Placeholder character removed before writing

    Raises:
        FileAccessError: If the output file cannot be written
    """
    try:
        with open(path, "w") as handle:
            for chrom, seq in sequences.items():
                handle.write(f">{chrom}\n")
                for line in wrap_sequence(strip_placeholders(str(seq), placeholder), line_width):
                    handle.write(line + "\n")
    except OSError as e:
        raise FileAccessError(f"Cannot write {path}: {e}") from e
