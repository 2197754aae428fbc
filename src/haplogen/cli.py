"""
Command line interface for haplogen.

Examples:
    # Haploid genome from SNVs and SVs
    haplogen -r hg19.fa -s masterVar.tsv.bz2 -v highConfidenceSV.tsv -o new.fa

    # Diploid genome from SNPs only (second haplotype written to new.fa_2)
    haplogen -r hg19.fa -s masterVar.tsv -t snp -d -o new.fa
"""

import argparse
import sys

from . import __version__
from .config import GenomeOptions
from .core import (
    DEFAULT_ZYGOSITY_THRESHOLD,
    FASTA_LINE_WIDTH,
    SNV_TYPES,
    SV_TYPES,
    FileAccessError,
    UsageError,
)
from .personalize import write_personal_genome


def build_parser():
    parser = argparse.ArgumentParser(
        prog="haplogen",
        description="Create a personal genome by applying SNVs and SVs to a reference genome.",
    )
    parser.add_argument("-r", "--reference", help="FASTA file with the reference genome")
    parser.add_argument("-s", "--snv", help="Table with SNVs (masterVar layout)")
    parser.add_argument("-v", "--sv", help="Table with SVs (highConfidenceSV layout)")
    parser.add_argument("-o", "--out", help="Output FASTA; haplotype 2 is written to OUT_2")
    parser.add_argument(
        "-t",
        "--type",
        default=",".join(SNV_TYPES + SV_TYPES),
        help="Comma separated variant types to apply (default: %(default)s); "
        "'ref' and 'complex' are always skipped",
    )
    parser.add_argument(
        "-x", "--sex", default="M", type=str.upper, choices=["M", "F"], help="Sex (default: M)"
    )
    parser.add_argument("-d", "--diploid", action="store_true", help="Create a diploid genome")
    parser.add_argument(
        "--zygosity-threshold",
        type=float,
        default=DEFAULT_ZYGOSITY_THRESHOLD,
        help="Per-haplotype SV frequency a haplotype must exceed (default: %(default)s)",
    )
    parser.add_argument(
        "--key-events-by-kind",
        action="store_true",
        help="Keep deferred events of different types at the same position",
    )
    parser.add_argument(
        "--line-width",
        type=int,
        default=FASTA_LINE_WIDTH,
        help="FASTA line width (default: %(default)s)",
    )
    parser.add_argument("--verbose", action="store_true", help="Verbose mode")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    options = GenomeOptions(
        reference=args.reference,
        out=args.out,
        snv=args.snv,
        sv=args.sv,
        types=args.type,
        sex=args.sex,
        diploid=args.diploid,
        verbose=args.verbose,
        zygosity_threshold=args.zygosity_threshold,
        key_events_by_kind=args.key_events_by_kind,
        line_width=args.line_width,
    )
    try:
        options.validate()
    except UsageError as e:
        parser.error(str(e))

    try:
        written = write_personal_genome(options)
    except FileAccessError as e:
        print(f"haplogen: {e}", file=sys.stderr)
        return 1

    if args.verbose:
        print("Done: " + ", ".join(written))
    return 0


if __name__ == "__main__":
    sys.exit(main())
