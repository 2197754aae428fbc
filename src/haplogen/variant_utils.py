"""
Variant table reading utilities for haplogen.

This module decodes rows of SNV tables (Complete Genomics masterVar layout)
and SV tables (highConfidenceSV layout) into typed records and loads whole
tables into pandas DataFrames.
"""

import numbers
import os
import warnings
from dataclasses import asdict, dataclass
from typing import Callable, List, Optional, Tuple, Union

import pandas as pd

from .core import MalformedRecordError
from .genome import open_text

SNV_MIN_FIELDS = 12
SV_MIN_FIELDS = 15

SNV_COLUMNS = [
    "line",
    "chrom",
    "start",
    "end",
    "call",
    "variant_type",
    "ref",
    "allele1",
    "allele2",
]

SV_COLUMNS = [
    "line",
    "variant_type",
    "frequencies",
    "origin_chrom",
    "origin_start",
    "origin_end",
    "origin_length",
    "origin_strand",
    "dest_chrom",
    "dest_start",
    "dest_end",
    "dest_length",
    "dest_strand",
]


@dataclass
class SnvRecord:
    """
    One row of an SNV table.

    Coordinates are 0-based, half open ``[start, end)``.
    """
    line: Optional[int]    # Line number in the source file
    chrom: str             # Chromosome name
    start: int             # Start offset
    end: int               # End offset
    call: str              # Call status ("no-call" rows are skipped)
    variant_type: str      # snp, ins, del, sub, ref, complex...
    ref: str               # Reference allele
    allele1: str           # Allele of haplotype 1
    allele2: str           # Allele of haplotype 2

    def allele(self, haplotype: int) -> str:
        """Allele carried by haplotype 1 or 2."""
        return self.allele1 if haplotype == 1 else self.allele2


@dataclass
class SvRecord:
    """
    One row of an SV table.

    ``frequencies`` holds one value (applies to every haplotype) or two
    (one per haplotype). Destination fields may be None when blank.
    """
    line: Optional[int]
    variant_type: str
    frequencies: Tuple[float, ...]
    origin_chrom: str
    origin_start: int
    origin_end: int
    origin_length: int
    origin_strand: str
    dest_chrom: Optional[str]
    dest_start: Optional[int]
    dest_end: Optional[int]
    dest_length: Optional[int]
    dest_strand: Optional[str]


def is_skippable_line(line: str) -> bool:
    """Comment ('#'), header ('>') and blank lines carry no record."""
    stripped = line.strip()
    return not stripped or line.startswith("#") or line.startswith(">")


def split_fields(line: str) -> List[str]:
    """
    Split a table row into fields.

    Tab separated rows keep empty fields (an empty allele is a value);
    other rows are split on runs of whitespace.
    """
    line = line.rstrip("\r\n")
    if "\t" in line:
        return line.split("\t")
    return line.split()


def _parse_int(value: str, name: str, line=None, optional: bool = False) -> Optional[int]:
    value = value.strip()
    if optional and value == "":
        return None
    try:
        return int(value)
    except ValueError:
        raise MalformedRecordError(f"{name} is not an integer: {value!r}", line) from None


def parse_frequencies(value: str, line=None) -> Tuple[float, ...]:
    """
    Parse an SV frequency field.

    Examples:
        parse_frequencies("1") -> (1.0,)
        parse_frequencies("0.5;0.02") -> (0.5, 0.02)
    """
    parts = [p.strip() for p in value.strip().split(";")]
    if len(parts) not in (1, 2):
        raise MalformedRecordError(f"Expected one or two frequencies, got {value!r}", line)
    try:
        return tuple(float(p) for p in parts)
    except ValueError:
        raise MalformedRecordError(f"Frequency is not numeric: {value!r}", line) from None


def zygosity_gate(frequencies: Tuple[float, ...], haplotype: int, threshold: float) -> bool:
    """
    Decide whether an SV applies to a haplotype.

    A single frequency applies everywhere. With two frequencies, haplotype
    ``h`` receives the variant only when its frequency is strictly above
    ``threshold``.
    """
    if len(frequencies) < 2:
        return True
    return frequencies[haplotype - 1] > threshold


def parse_snv_line(line: str, line_no: Optional[int] = None) -> SnvRecord:
    """
    Decode one SNV table row.

    Columns: ignored, ignored, chromosome, start, end, call status, type,
    reference allele, allele 1, allele 2, score 1, score 2. Extra trailing
    columns are ignored.

    Raises:
        MalformedRecordError: On too few fields or non-numeric coordinates
    """
    fields = split_fields(line)
    if len(fields) < SNV_MIN_FIELDS:
        raise MalformedRecordError(
            f"Expected at least {SNV_MIN_FIELDS} fields, got {len(fields)}", line_no
        )
    return SnvRecord(
        line=line_no,
        chrom=fields[2].strip(),
        start=_parse_int(fields[3], "start", line_no),
        end=_parse_int(fields[4], "end", line_no),
        call=fields[5].strip(),
        variant_type=fields[6].strip(),
        ref=fields[7].strip(),
        allele1=fields[8].strip(),
        allele2=fields[9].strip(),
    )


def parse_sv_line(line: str, line_no: Optional[int] = None) -> SvRecord:
    """
    Decode one SV table row.

    Columns: ignored, type, ignored, ignored, frequency, origin chromosome,
    origin start, origin end, origin length, origin strand, destination
    chromosome, destination start, destination end, destination length,
    destination strand.

    Raises:
        MalformedRecordError: On too few fields, non-numeric origin
                              coordinates or an unparseable frequency
    """
    fields = split_fields(line)
    if len(fields) < SV_MIN_FIELDS:
        raise MalformedRecordError(
            f"Expected at least {SV_MIN_FIELDS} fields, got {len(fields)}", line_no
        )
    dest_chrom = fields[10].strip() or None
    dest_strand = fields[14].strip() or None
    return SvRecord(
        line=line_no,
        variant_type=fields[1].strip(),
        frequencies=parse_frequencies(fields[4], line_no),
        origin_chrom=fields[5].strip(),
        origin_start=_parse_int(fields[6], "origin start", line_no),
        origin_end=_parse_int(fields[7], "origin end", line_no),
        origin_length=_parse_int(fields[8], "origin length", line_no),
        origin_strand=fields[9].strip(),
        dest_chrom=dest_chrom,
        dest_start=_parse_int(fields[11], "destination start", line_no, optional=True),
        dest_end=_parse_int(fields[12], "destination end", line_no, optional=True),
        dest_length=_parse_int(fields[13], "destination length", line_no, optional=True),
        dest_strand=dest_strand,
    )


def _read_records(path, decoder: Callable) -> list:
    records = []
    with open_text(path) as handle:
        for line_no, line in enumerate(handle, start=1):
            if is_skippable_line(line):
                continue
            try:
                records.append(decoder(line, line_no))
            except MalformedRecordError as e:
                warnings.warn(f"Skipped malformed record in {path} (line {line_no}): {e}")
    return records


def _records_to_frame(records: list, columns: List[str]) -> pd.DataFrame:
    # object dtype keeps Python ints and None in optional coordinate columns
    return pd.DataFrame([asdict(r) for r in records], columns=columns, dtype=object)


def read_snv_table(path) -> pd.DataFrame:
    """
    Read an SNV table into a DataFrame.

    Comment, header and blank lines are skipped; malformed rows are reported
    with a warning and skipped. Compressed files (.gz, .bz2) are supported.

    Args:
        path: Path to the SNV table

    Returns:
        DataFrame with columns: line, chrom, start, end, call, variant_type,
        ref, allele1, allele2

    Raises:
        FileAccessError: If the file cannot be opened
    """
    return _records_to_frame(_read_records(path, parse_snv_line), SNV_COLUMNS)


def read_sv_table(path) -> pd.DataFrame:
    """
    Read an SV table into a DataFrame.

    Args:
        path: Path to the SV table

    Returns:
        DataFrame with columns: line, variant_type, frequencies, origin_chrom,
        origin_start, origin_end, origin_length, origin_strand, dest_chrom,
        dest_start, dest_end, dest_length, dest_strand

    Raises:
        FileAccessError: If the file cannot be opened
    """
    return _records_to_frame(_read_records(path, parse_sv_line), SV_COLUMNS)


def _load_table(table_fn, reader: Callable, columns: List[str]) -> pd.DataFrame:
    if isinstance(table_fn, (str, os.PathLike)):
        return reader(table_fn)
    if not isinstance(table_fn, pd.DataFrame):
        raise TypeError(f"Expected a path or DataFrame, got {type(table_fn).__name__}")
    missing = [c for c in columns if c not in table_fn.columns and c != "line"]
    if missing:
        raise ValueError(f"Variant DataFrame is missing columns: {missing}")
    variants_df = table_fn.copy()
    if "line" not in variants_df.columns:
        variants_df.insert(0, "line", range(1, len(variants_df) + 1))
    return variants_df[columns].copy()


SNV_ALLELE_COLUMNS = ["ref", "allele1", "allele2"]


def load_snv_table(snv_fn: Union[str, os.PathLike, pd.DataFrame]) -> pd.DataFrame:
    """
    Load an SNV table from a path or return a checked copy of a DataFrame.

    Empty allele cells (NaN after ``pd.read_csv``) become empty strings.
    """
    variants_df = _load_table(snv_fn, read_snv_table, SNV_COLUMNS)
    for column in SNV_ALLELE_COLUMNS:
        variants_df[column] = variants_df[column].fillna("").astype(str)
    return variants_df


def _frequency_cell(value, line=None) -> Tuple[float, ...]:
    if isinstance(value, tuple):
        return value
    if isinstance(value, str):
        return parse_frequencies(value, line)
    if isinstance(value, numbers.Real) and not pd.isna(value):
        return (float(value),)
    raise MalformedRecordError(f"Frequency is not numeric: {value!r}", line)


def load_sv_table(sv_fn: Union[str, os.PathLike, pd.DataFrame]) -> pd.DataFrame:
    """
    Load an SV table from a path or return a checked copy of a DataFrame.

    Frequencies given as strings ("0.5;0.3") or plain numbers are converted
    to tuples; rows whose frequency cannot be read are warned about and
    dropped.
    """
    variants_df = _load_table(sv_fn, read_sv_table, SV_COLUMNS)
    frequencies, keep = [], []
    for line, value in zip(variants_df["line"], variants_df["frequencies"]):
        try:
            frequencies.append(_frequency_cell(value, line))
            keep.append(True)
        except MalformedRecordError as e:
            warnings.warn(f"Skipped malformed SV record (line {line}): {e}")
            frequencies.append(None)
            keep.append(False)
    variants_df["frequencies"] = pd.Series(frequencies, index=variants_df.index, dtype=object)
    return variants_df.loc[keep]
