"""
Chromosome naming utilities for haplogen.

This module recognizes sex and mitochondrial contigs regardless of naming
convention, decides which contigs are cloned into the second haplotype, and
reports variant chromosomes that the reference does not know about.
"""

import re
from typing import Dict, Iterable, List, Set

AUTOSOME = "autosome"
CHROM_X = "X"
CHROM_Y = "Y"
MITOCHONDRIAL = "MT"


def normalize_chromosome_name(chrom_name: str) -> str:
    """
    Normalize chromosome name to a standard format.

    Args:
        chrom_name: Raw chromosome name from a FASTA header or variant table

    Returns:
        Normalized chromosome name (without 'chr' prefix, uppercase)

    Examples:
        'chr1' -> '1'
        'CHR1' -> '1'
        'chrX' -> 'X'
        'chrM' -> 'MT'
        'M' -> 'MT'  # Mitochondrial normalization
    """
    normalized = str(chrom_name).strip()

    # Remove 'chr' prefix (case insensitive)
    normalized = re.sub(r"^chr", "", normalized, flags=re.IGNORECASE)

    if normalized.upper() in ["M", "MITO", "MITOCHONDRION"]:
        normalized = "MT"

    return normalized.upper()


def classify_chromosome(chrom_name: str) -> str:
    """
    Classify a contig as X, Y, mitochondrial or autosome.

    Anything that is not a sex or mitochondrial contig (including unplaced
    scaffolds) counts as an autosome.
    """
    normalized = normalize_chromosome_name(chrom_name)
    if normalized in (CHROM_X, CHROM_Y, MITOCHONDRIAL):
        return normalized
    return AUTOSOME


def haplotype2_chromosomes(chrom_names: Iterable[str], sex: str) -> List[str]:
    """
    Select the contigs copied into the second haplotype.

    The second haplotype carries every autosome plus the second sex
    chromosome of the individual: X for females (XX), Y for males (XY).
    The mitochondrial contig is haploid and never copied.

    Args:
        chrom_names: Contig names of the first haplotype, in order
        sex: 'M' or 'F'

    Returns:
        Contig names for the second haplotype, in the same order
    """
    excluded = {MITOCHONDRIAL, CHROM_X if sex == "M" else CHROM_Y}
    return [c for c in chrom_names if classify_chromosome(c) not in excluded]


def get_unknown_chromosome_report(
    reference_chroms: Set[str], variant_chroms: Dict[str, Set[str]]
) -> str:
    """
    Generate a human-readable report of variant chromosomes missing from the reference.

    Args:
        reference_chroms: Set of reference chromosome names
        variant_chroms: Mapping of table label -> chromosome names used in it

    Returns:
        Formatted report string
    """
    report_lines = []

    report_lines.append("Chromosome Matching Report")
    report_lines.append("=" * 40)
    report_lines.append(
        f"Reference chromosomes ({len(reference_chroms)}): {sorted(reference_chroms)}"
    )

    for label, chroms in variant_chroms.items():
        unknown = sorted(set(chroms) - set(reference_chroms))
        report_lines.append("")
        report_lines.append(f"{label} chromosomes ({len(chroms)}): {sorted(chroms)}")
        if unknown:
            report_lines.append(f"  Not in reference ({len(unknown)}), skipped:")
            for chrom in unknown:
                report_lines.append(f"    '{chrom}'")
        else:
            report_lines.append("  All present in reference")

    return "\n".join(report_lines)


def report_unknown_chromosomes(
    reference_chroms: Set[str], variant_chroms: Dict[str, Set[str]], verbose: bool = True
) -> Set[str]:
    """
    Find variant chromosomes unknown to the reference and optionally print a report.

    Records on these chromosomes are skipped by the classifier; this only
    makes the skip visible.

    Args:
        reference_chroms: Set of reference chromosome names
        variant_chroms: Mapping of table label -> chromosome names used in it
        verbose: Whether to print the matching report

    Returns:
        Set of unknown chromosome names across all tables
    """
    unknown = set()
    for chroms in variant_chroms.values():
        unknown.update(set(chroms) - set(reference_chroms))

    if verbose and unknown:
        print(get_unknown_chromosome_report(reference_chroms, variant_chroms))

    return unknown
