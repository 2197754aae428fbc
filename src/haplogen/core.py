"""
Core constants and exceptions for haplogen.

This module provides the constants shared by the reader, the editing engine
and the writer, plus the exception hierarchy raised across the package.
"""

# Written over deleted bases; removed only when a haplotype is written out.
PLACEHOLDER = "X"

# FASTA output line width
FASTA_LINE_WIDTH = 70

# Suffix appended to the output path for the second haplotype
HAPLOTYPE2_SUFFIX = "_2"

# Variant types understood in SNV tables (masterVar varType column)
SNV_TYPES = ("snp", "ins", "del", "sub")

# Variant types understood in SV tables (highConfidenceSV type column)
SV_TYPES = (
    "deletion",
    "distal-duplication",
    "inversion",
    "interchromosomal",
    "probable-inversion",
    "tandem-duplication",
)

DEFAULT_TYPES = frozenset(SNV_TYPES + SV_TYPES)

# SNV types that are never applied, whatever the allow-list says
ALWAYS_SKIPPED_SNV_TYPES = frozenset({"ref", "complex"})

NO_CALL = "no-call"
UNKNOWN_ALLELE = "?"

# SV types applied in place (length-stable)
SV_DELETION = "deletion"
SV_PROBABLE_INVERSION = "probable-inversion"

# Deferred event kinds grouped by how they are replayed
INSERTION_KINDS = frozenset({"ins", "sub"})
TANDEM_DUPLICATION_KINDS = frozenset({"tandem-duplication"})
TRANSLOCATION_KINDS = frozenset({"distal-duplication", "interchromosomal", "inversion"})

DEFAULT_ZYGOSITY_THRESHOLD = 0.1

SEXES = ("M", "F")


class HaplogenError(Exception):
    """Base class for all haplogen errors."""


class UsageError(HaplogenError):
    """Raised when the run configuration is incomplete or inconsistent."""


class FileAccessError(HaplogenError):
    """Raised when an input file cannot be opened, decompressed or parsed."""


class MalformedRecordError(HaplogenError):
    """
    Raised when a variant table row cannot be decoded.

    Readers catch it, warn with the offending line number and skip the row.
    """

    def __init__(self, message, line=None):
        super().__init__(message)
        self.line = line
