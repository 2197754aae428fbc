"""
Run configuration for haplogen.

A single ``GenomeOptions`` value carries everything the engine needs; the
command line front end builds one, library callers may build one directly.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional, Union

from .core import (
    DEFAULT_TYPES,
    DEFAULT_ZYGOSITY_THRESHOLD,
    FASTA_LINE_WIDTH,
    HAPLOTYPE2_SUFFIX,
    SEXES,
    UsageError,
)


def parse_types(types: Union[str, Iterable[str], None]) -> FrozenSet[str]:
    """
    Normalize a variant type allow-list.

    Args:
        types: Comma separated string ("snp,del"), an iterable of names, or
               None for the full default set

    Returns:
        Frozen set of type names
    """
    if types is None:
        return DEFAULT_TYPES
    if isinstance(types, str):
        types = types.split(",")
    return frozenset(t.strip() for t in types if t and t.strip())


@dataclass
class GenomeOptions:
    """
    Options for building a personal genome.

    Attributes:
        reference: Reference FASTA path (or a loaded mapping / pyfaidx.Fasta)
        out: Output FASTA path for haplotype 1; haplotype 2 goes to out + '_2'
        snv: SNV table path or DataFrame (optional)
        sv: SV table path or DataFrame (optional)
        types: Allow-listed variant types
        sex: 'M' or 'F'; decides which sex chromosome haplotype 2 carries
        diploid: Build a second haplotype
        verbose: Print progress information
        zygosity_threshold: A haplotype receives a two-frequency SV only when
                            its frequency is strictly above this value
        key_events_by_kind: Key deferred events by (position, kind) instead
                            of position alone
        line_width: FASTA output line width
    """

    reference: object = None
    out: Optional[str] = None
    snv: object = None
    sv: object = None
    types: FrozenSet[str] = field(default=DEFAULT_TYPES)
    sex: str = "M"
    diploid: bool = False
    verbose: bool = False
    zygosity_threshold: float = DEFAULT_ZYGOSITY_THRESHOLD
    key_events_by_kind: bool = False
    line_width: int = FASTA_LINE_WIDTH

    def __post_init__(self):
        self.types = parse_types(self.types)
        if isinstance(self.sex, str):
            self.sex = self.sex.upper()

    def validate(self, require_output: bool = True) -> "GenomeOptions":
        """
        Check the options before any file is touched.

        Args:
            require_output: Whether an output path is mandatory

        Returns:
            self, for chaining

        Raises:
            UsageError: If a required option is missing or a value is invalid
        """
        if self.reference is None:
            raise UsageError("A reference genome is required")
        if require_output and not self.out:
            raise UsageError("An output file is required")
        if self.snv is None and self.sv is None:
            raise UsageError("At least one of the SNV or SV tables is required")
        if self.sex not in SEXES:
            raise UsageError(f"Sex must be one of {', '.join(SEXES)}, got {self.sex!r}")
        if self.zygosity_threshold < 0:
            raise UsageError(
                f"Zygosity threshold must be non-negative, got {self.zygosity_threshold}"
            )
        if self.line_width <= 0:
            raise UsageError(f"Line width must be positive, got {self.line_width}")
        if not self.types:
            raise UsageError("The variant type allow-list is empty")
        return self

    @property
    def out2(self) -> Optional[str]:
        """Output path of the second haplotype."""
        if not self.out:
            return None
        return f"{self.out}{HAPLOTYPE2_SUFFIX}"
