"""
haplogen: A module for generating personal genome sequences by applying
called SNVs and structural variants to a reference genome.

This package provides functionality for:
- Reference loading and haplotype cloning
- Variant table reading and classification
- Immediate and deferred (coordinate-shifting) variant application
- FASTA output of one or two haplotypes
"""

# Version
__version__ = "0.1.0"
# Package metadata
__description__ = (
    "A module for generating haploid or diploid personal genomes from a reference "
    "and SNV/SV tables"
)

# Import core components
from .core import (
    PLACEHOLDER,
    DEFAULT_TYPES,
    HaplogenError,
    UsageError,
    FileAccessError,
    MalformedRecordError,
)

from .config import GenomeOptions

# Import sequence utilities
from .sequence_utils import SequenceBuffer, rc_str, strip_placeholders, wrap_sequence

# Import chromosome utilities
from .chromosome_utils import (
    normalize_chromosome_name,
    classify_chromosome,
    haplotype2_chromosomes,
)

# Import genome loading and writing
from .genome import Genome, Haplotype, load_reference, write_fasta

# Import variant reading utilities
from .variant_utils import (
    SnvRecord,
    SvRecord,
    parse_snv_line,
    parse_sv_line,
    read_snv_table,
    read_sv_table,
    zygosity_gate,
)

# Import personalize functions
from .personalize import (
    DeferredEvent,
    DeferredEventQueue,
    ImmediateEditor,
    VariantClassifier,
    PersonalGenomeBuilder,
    apply_deferred_event,
    get_personal_genome,
    write_personal_genome,
)
