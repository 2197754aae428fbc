"""
Personal genome construction for haplogen.

This module applies SNV and SV records to the haplotypes of a genome in two
passes. Length-stable edits (same-length substitutions, deletion
placeholders, in-place reversals) are applied immediately. Length-changing
and copying edits are collected per haplotype as deferred events and
replayed afterwards, right to left within each chromosome, reading any
copied material from a snapshot taken between the two passes.
"""

import warnings
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

import pandas as pd

from .config import GenomeOptions
from .core import (
    ALWAYS_SKIPPED_SNV_TYPES,
    DEFAULT_TYPES,
    DEFAULT_ZYGOSITY_THRESHOLD,
    INSERTION_KINDS,
    NO_CALL,
    PLACEHOLDER,
    SV_DELETION,
    SV_PROBABLE_INVERSION,
    TANDEM_DUPLICATION_KINDS,
    TRANSLOCATION_KINDS,
    UNKNOWN_ALLELE,
    MalformedRecordError,
)
from .chromosome_utils import report_unknown_chromosomes
from .genome import Genome, Haplotype, write_fasta
from .sequence_utils import SequenceBuffer, rc_str
from .variant_utils import load_snv_table, load_sv_table, zygosity_gate


@dataclass
class DeferredEvent:
    """
    A length-changing or copying edit waiting for the replay pass.

    For SNV-derived events the origin and destination loci coincide and
    ``payload`` holds the donor allele. For SV-derived events the origin
    interval is copied from the snapshot onto the destination.
    """
    kind: str                      # variant type of the source record
    origin_chrom: str
    origin_start: int
    length: int                    # origin length
    origin_strand: Optional[str]
    dest_chrom: str
    dest_start: int
    dest_length: Optional[int]
    dest_strand: Optional[str]
    payload: Optional[str] = None
    line: Optional[int] = None     # source table line, for reporting

    @property
    def location(self) -> str:
        return f"{self.dest_chrom}:{self.dest_start}"


class ImmediateEditor:
    """
    Applies length-stable edits to one haplotype.

    Every edit replaces an interval with content of the same length, so the
    coordinates of later records stay valid for the whole pass.
    """

    def __init__(self, haplotype: Haplotype, placeholder: str = PLACEHOLDER):
        self.haplotype = haplotype
        self.placeholder = placeholder

    def _buffer(self, chrom: str, start: int, length: int) -> SequenceBuffer:
        buffer = self.haplotype[chrom]
        if start < 0 or start + length > len(buffer):
            raise IndexError(
                f"interval [{start}, {start + length}) outside {chrom} "
                f"(length {len(buffer)})"
            )
        return buffer

    def substitute(self, chrom: str, start: int, allele: str) -> None:
        """Overwrite ``[start, start+len(allele))`` with ``allele``."""
        self._buffer(chrom, start, len(allele)).replace_range(start, len(allele), allele)

    def mask(self, chrom: str, start: int, length: int) -> None:
        """Write placeholders over ``[start, start+length)``."""
        self._buffer(chrom, start, length).replace_range(
            start, length, self.placeholder * length
        )

    def reverse(self, chrom: str, start: int, length: int) -> None:
        """Reverse (without complementing) ``[start, start+length)`` in place."""
        buffer = self._buffer(chrom, start, length)
        buffer.replace_range(start, length, buffer.read(start, length)[::-1])


def _read_origin(event: DeferredEvent, snapshot: Mapping[str, str]) -> str:
    if event.origin_chrom not in snapshot:
        raise KeyError(f"origin chromosome {event.origin_chrom} not in haplotype")
    sequence = snapshot[event.origin_chrom]
    start, end = event.origin_start, event.origin_start + event.length
    if start < 0 or event.length < 0 or end > len(sequence):
        raise IndexError(
            f"origin interval [{start}, {end}) outside {event.origin_chrom} "
            f"(length {len(sequence)})"
        )
    return sequence[start:end]


def _replay_insertion(event: DeferredEvent, buffer: SequenceBuffer, snapshot) -> int:
    # The base at dest_start is kept as an anchor and the payload follows it.
    span = max(event.length, 1)
    anchor = buffer.read(event.dest_start, 1)
    return buffer.replace_range(event.dest_start, span, anchor + (event.payload or ""))


def _replay_tandem_duplication(event: DeferredEvent, buffer: SequenceBuffer, snapshot) -> int:
    segment = _read_origin(event, snapshot)
    return buffer.replace_range(event.origin_start, event.length, segment * 2)


def _replay_translocation(event: DeferredEvent, buffer: SequenceBuffer, snapshot) -> int:
    segment = _read_origin(event, snapshot)
    if event.origin_strand != event.dest_strand:
        segment = rc_str(segment)
    return buffer.replace_range(event.dest_start, event.dest_length, segment)


REPLAY_HANDLERS = {}
REPLAY_HANDLERS.update({kind: _replay_insertion for kind in INSERTION_KINDS})
REPLAY_HANDLERS.update({kind: _replay_tandem_duplication for kind in TANDEM_DUPLICATION_KINDS})
REPLAY_HANDLERS.update({kind: _replay_translocation for kind in TRANSLOCATION_KINDS})


def apply_deferred_event(
    event: DeferredEvent, buffer: SequenceBuffer, snapshot: Mapping[str, str]
) -> Optional[int]:
    """
    Replay one deferred event against a live buffer.

    Args:
        event: Event to apply
        buffer: Live buffer of the destination chromosome
        snapshot: Pre-replay copy of the haplotype; the only source of
                  copied material

    Returns:
        Net change in buffer length, or None if the kind has no handler
        (unknown kinds are ignored)
    """
    handler = REPLAY_HANDLERS.get(event.kind)
    if handler is None:
        return None
    return handler(event, buffer, snapshot)


class DeferredEventQueue:
    """
    Deferred events of one haplotype, keyed by destination chromosome and position.

    One event is kept per key: adding an event at an occupied key replaces
    the earlier one. With ``key_by_kind`` the key also includes the event
    kind, so events of different kinds at one position are all kept.
    """

    def __init__(self, key_by_kind: bool = False):
        self.key_by_kind = key_by_kind
        self.events: Dict[str, Dict[tuple, DeferredEvent]] = {}

    def __len__(self):
        return sum(len(table) for table in self.events.values())

    def _key(self, event: DeferredEvent) -> tuple:
        if self.key_by_kind:
            return (event.dest_start, event.kind)
        return (event.dest_start,)

    def add(self, event: DeferredEvent) -> Optional[DeferredEvent]:
        """
        Queue an event.

        Returns:
            The event it replaced, if any
        """
        table = self.events.setdefault(event.dest_chrom, {})
        key = self._key(event)
        replaced = table.get(key)
        table[key] = event
        return replaced

    def pending(self, chrom: str) -> List[DeferredEvent]:
        """Events of ``chrom`` in replay order (descending destination position)."""
        table = self.events.get(chrom, {})
        return [table[key] for key in sorted(table, reverse=True)]

    def replay(
        self, haplotype: Haplotype, snapshot: Optional[Mapping[str, str]] = None
    ) -> Dict[str, int]:
        """
        Apply every queued event to ``haplotype``.

        Args:
            haplotype: Haplotype whose immediate edits are complete
            snapshot: Pre-replay copy to read copied material from; taken
                      from ``haplotype`` when not given

        Returns:
            Counts of applied, ignored (unknown kind) and skipped events
        """
        if snapshot is None:
            snapshot = haplotype.snapshot()

        stats = {"applied": 0, "ignored": 0, "skipped": 0}
        for chrom in self.events:
            if chrom not in haplotype:
                stats["skipped"] += len(self.events[chrom])
                continue
            buffer = haplotype[chrom]
            for event in self.pending(chrom):
                try:
                    change = apply_deferred_event(event, buffer, snapshot)
                except (IndexError, KeyError) as e:
                    reason = e.args[0] if e.args else e
                    warnings.warn(
                        f"Skipped {event.kind} event at {event.location} "
                        f"({haplotype.name}, line {event.line}): {reason}"
                    )
                    stats["skipped"] += 1
                    continue
                if change is None:
                    stats["ignored"] += 1
                else:
                    stats["applied"] += 1
        return stats


class VariantClassifier:
    """
    Routes variant records to the immediate editor or the deferred queues.

    Holds one ``ImmediateEditor`` and one ``DeferredEventQueue`` per
    haplotype of ``genome``.
    """

    def __init__(
        self,
        genome: Genome,
        types=DEFAULT_TYPES,
        zygosity_threshold: float = DEFAULT_ZYGOSITY_THRESHOLD,
        key_events_by_kind: bool = False,
        placeholder: str = PLACEHOLDER,
    ):
        self.genome = genome
        self.types = frozenset(types)
        self.zygosity_threshold = zygosity_threshold
        self.editors = {h: ImmediateEditor(hap, placeholder) for h, hap in genome.haplotypes()}
        self.queues = {h: DeferredEventQueue(key_events_by_kind) for h, _ in genome.haplotypes()}
        self.applied_count = 0
        self.deferred_count = 0
        self.skipped_count = 0
        self.skipped_records = []  # List of (table, line, chrom, pos, variant_type, reason) tuples

    def _skip(self, table: str, line, chrom, pos, variant_type, reason: str) -> None:
        self.skipped_count += 1
        self.skipped_records.append((table, line, chrom, pos, variant_type, reason))

    def classify_snv(self, record) -> None:
        """
        Apply or defer one SNV record on every haplotype that carries its chromosome.

        ``record`` needs the attributes of ``SnvRecord`` (a DataFrame row
        from ``itertuples`` works).
        """
        variant_type = record.variant_type
        chrom = record.chrom
        reason = None
        if record.call == NO_CALL:
            reason = "no_call"
        elif variant_type in ALWAYS_SKIPPED_SNV_TYPES:
            reason = "unsupported_type"
        elif variant_type not in self.types:
            reason = "filtered_type"
        elif chrom not in self.genome.h1:
            reason = "unknown_chromosome"
        if reason is not None:
            return self._skip("SNV", record.line, chrom, record.start, variant_type, reason)

        start, end, ref = int(record.start), int(record.end), record.ref
        alleles = {1: record.allele1, 2: record.allele2}
        for h, haplotype in self.genome.haplotypes():
            if chrom not in haplotype:
                continue
            allele = alleles[h]
            changed = allele != ref and allele != UNKNOWN_ALLELE
            if len(ref) == len(allele):
                if changed:
                    self.editors[h].substitute(chrom, start, allele)
                    self.applied_count += 1
            elif variant_type == "del":
                if len(allele) >= 1:
                    self.editors[h].mask(chrom, start, len(ref))
                    self.applied_count += 1
            elif changed:
                self.queues[h].add(
                    DeferredEvent(
                        kind=variant_type,
                        origin_chrom=chrom,
                        origin_start=start,
                        length=end - start,
                        origin_strand=None,
                        dest_chrom=chrom,
                        dest_start=start,
                        dest_length=end - start,
                        dest_strand=None,
                        payload=allele,
                        line=record.line,
                    )
                )
                self.deferred_count += 1

    def classify_sv(self, record) -> None:
        """
        Apply or defer one SV record on every haplotype that passes the zygosity gate.

        ``record`` needs the attributes of ``SvRecord``.

        Raises:
            MalformedRecordError: If a deferred type lacks destination fields
        """
        variant_type = record.variant_type
        chrom = record.origin_chrom
        if variant_type not in self.types or chrom not in self.genome.h1:
            reason = "filtered_type" if variant_type not in self.types else "unknown_chromosome"
            return self._skip("SV", record.line, chrom, record.origin_start, variant_type, reason)

        start, length = int(record.origin_start), int(record.origin_length)
        event = None
        if variant_type not in (SV_DELETION, SV_PROBABLE_INVERSION):
            event = self._sv_event(record)
            if event.dest_chrom not in self.genome.h1:
                return self._skip(
                    "SV", record.line, event.dest_chrom, event.dest_start,
                    variant_type, "unknown_chromosome",
                )

        for h, haplotype in self.genome.haplotypes():
            if not zygosity_gate(tuple(record.frequencies), h, self.zygosity_threshold):
                continue
            if variant_type == SV_DELETION:
                if chrom in haplotype:
                    self.editors[h].mask(chrom, start, length)
                    self.applied_count += 1
            elif variant_type == SV_PROBABLE_INVERSION:
                if chrom in haplotype:
                    self.editors[h].reverse(chrom, start, length)
                    self.applied_count += 1
            elif event.dest_chrom in haplotype:
                self.queues[h].add(event)
                self.deferred_count += 1

    @staticmethod
    def _sv_event(record) -> DeferredEvent:
        missing = [
            name
            for name in ("dest_chrom", "dest_start")
            if pd.isna(getattr(record, name))
        ]
        if record.variant_type in TRANSLOCATION_KINDS and pd.isna(record.dest_length):
            missing.append("dest_length")
        if missing:
            raise MalformedRecordError(
                f"{record.variant_type} record needs {', '.join(missing)}", record.line
            )
        return DeferredEvent(
            kind=record.variant_type,
            origin_chrom=record.origin_chrom,
            origin_start=int(record.origin_start),
            length=int(record.origin_length),
            origin_strand=record.origin_strand,
            dest_chrom=record.dest_chrom,
            dest_start=int(record.dest_start),
            dest_length=None if pd.isna(record.dest_length) else int(record.dest_length),
            dest_strand=record.dest_strand,
            line=record.line,
        )

    def _apply_table(self, variants_df: pd.DataFrame, table: str, classify) -> None:
        for record in variants_df.itertuples(index=False):
            try:
                classify(record)
            except (MalformedRecordError, IndexError) as e:
                pos = record.start if table == "SNV" else record.origin_start
                chrom = record.chrom if table == "SNV" else record.origin_chrom
                warnings.warn(f"Skipped {table} record at {chrom}:{pos} (line {record.line}): {e}")
                reason = "malformed" if isinstance(e, MalformedRecordError) else "out_of_range"
                self._skip(table, record.line, chrom, pos, record.variant_type, reason)

    def apply_snv_table(self, variants_df: pd.DataFrame) -> None:
        """Classify every row of an SNV DataFrame."""
        self._apply_table(variants_df, "SNV", self.classify_snv)

    def apply_sv_table(self, variants_df: pd.DataFrame) -> None:
        """Classify every row of an SV DataFrame."""
        self._apply_table(variants_df, "SV", self.classify_sv)

    def replay(self) -> Dict[int, Dict[str, int]]:
        """
        Replay the deferred events of every haplotype.

        Each haplotype is snapshotted right before its own replay and only
        its own queue is applied to it.
        """
        stats = {}
        for h, haplotype in self.genome.haplotypes():
            stats[h] = self.queues[h].replay(haplotype, haplotype.snapshot())
        return stats


def _format_skipped_record_report(skipped_records_list):
    """
    Format skipped record details for reporting.

    Args:
        skipped_records_list: List of (table, line, chrom, pos, variant_type, reason) tuples

    Returns:
        Formatted string with grouped skip reasons
    """
    if not skipped_records_list:
        return ""

    by_reason = defaultdict(list)
    for table, line, chrom, pos, variant_type, reason in skipped_records_list:
        by_reason[(table, reason)].append(line)

    reason_labels = {
        "no_call": "no-call",
        "unsupported_type": "ref/complex type",
        "filtered_type": "type not in allow-list",
        "unknown_chromosome": "chromosome not in reference",
        "malformed": "malformed record",
        "out_of_range": "coordinates outside chromosome",
    }

    lines = []
    for (table, reason), table_lines in sorted(by_reason.items()):
        label = reason_labels.get(reason, reason)
        shown = ", ".join(map(str, table_lines[:10]))
        more = f" (+{len(table_lines) - 10} more)" if len(table_lines) > 10 else ""
        lines.append(f"     - {table} {label}: {len(table_lines)} record(s), line(s) {shown}{more}")

    return "\n".join(lines)


class PersonalGenomeBuilder:
    """
    Builds a personal genome from a ``GenomeOptions`` value.

    Owns the genome being edited; ``build`` runs the immediate pass over the
    SNV then SV tables and then replays the deferred events.
    """

    def __init__(self, options: GenomeOptions):
        self.options = options
        self.genome: Optional[Genome] = None
        self.classifier: Optional[VariantClassifier] = None
        self.replay_stats: Dict[int, Dict[str, int]] = {}

    def _log(self, message: str) -> None:
        if self.options.verbose:
            print(message)

    def load_tables(self) -> Tuple[Optional[pd.DataFrame], Optional[pd.DataFrame]]:
        snv_df = sv_df = None
        if self.options.snv is not None:
            self._log(f"Reading small variants from {self._label(self.options.snv)}")
            snv_df = load_snv_table(self.options.snv)
        if self.options.sv is not None:
            self._log(f"Reading structural variants from {self._label(self.options.sv)}")
            sv_df = load_sv_table(self.options.sv)
        return snv_df, sv_df

    @staticmethod
    def _label(source) -> str:
        return "DataFrame" if isinstance(source, pd.DataFrame) else str(source)

    def _summarize(self, label: str, variants_df: pd.DataFrame) -> None:
        if not self.options.verbose or variants_df is None:
            return
        counts = variants_df["variant_type"].value_counts()
        summary = ", ".join(f"{t}={n}" for t, n in counts.items()) or "none"
        print(f"   {label}: {len(variants_df):,} records ({summary})")

    def build(self) -> Genome:
        """
        Load the reference and tables, then apply every variant.

        Returns:
            The edited genome (placeholders still present)
        """
        options = self.options.validate(require_output=False)

        self._log(f"🧬 Reading reference from {self._label(options.reference)}")
        self.genome = Genome.from_reference(options.reference, options.diploid, options.sex)
        snv_df, sv_df = self.load_tables()

        variant_chroms = {}
        if snv_df is not None:
            variant_chroms["SNV"] = set(snv_df["chrom"])
        if sv_df is not None:
            variant_chroms["SV"] = set(sv_df["origin_chrom"]) | set(sv_df["dest_chrom"].dropna())
        report_unknown_chromosomes(
            set(self.genome.h1.keys()), variant_chroms, verbose=options.verbose
        )

        self.classifier = VariantClassifier(
            self.genome,
            types=options.types,
            zygosity_threshold=options.zygosity_threshold,
            key_events_by_kind=options.key_events_by_kind,
        )

        if snv_df is not None:
            self._summarize("SNV", snv_df)
            self.classifier.apply_snv_table(snv_df)
        if sv_df is not None:
            self._summarize("SV", sv_df)
            self.classifier.apply_sv_table(sv_df)

        self._log(
            f"   Immediate edits: {self.classifier.applied_count:,}, "
            f"deferred events: {self.classifier.deferred_count:,}, "
            f"skipped records: {self.classifier.skipped_count:,}"
        )
        if options.verbose and self.classifier.skipped_records:
            print(_format_skipped_record_report(self.classifier.skipped_records))

        self.replay_stats = self.classifier.replay()
        for h, stats in self.replay_stats.items():
            self._log(
                f"   H{h} replay: {stats['applied']} applied, "
                f"{stats['ignored']} ignored, {stats['skipped']} skipped"
            )
        return self.genome

    def write(self) -> List[str]:
        """
        Write the built genome to ``options.out`` (and ``options.out2``).

        Returns:
            Paths written
        """
        options = self.options.validate()
        if self.genome is None:
            self.build()
        written = []
        for h, haplotype in self.genome.haplotypes():
            path = options.out if h == 1 else options.out2
            self._log(f"Writing {haplotype.name} to {path}")
            write_fasta(path, haplotype, line_width=options.line_width)
            written.append(path)
        return written


def get_personal_genome(
    reference_fn,
    snv_fn=None,
    sv_fn=None,
    types=None,
    sex="M",
    diploid=False,
    zygosity_threshold=DEFAULT_ZYGOSITY_THRESHOLD,
    key_events_by_kind=False,
    strip=True,
    verbose=False,
):
    """
    Create a personal genome by applying SNV and SV tables to a reference.

    Args:
        reference_fn: Reference FASTA path, name -> sequence mapping or pyfaidx.Fasta
        snv_fn: SNV table path or DataFrame (optional)
        sv_fn: SV table path or DataFrame (optional)
        types: Variant type allow-list (comma separated string or iterable);
               None for every known type
        sex: 'M' or 'F'
        diploid: Build a second haplotype
        zygosity_threshold: Frequency a haplotype must exceed to receive a
                            two-frequency SV
        key_events_by_kind: Keep same-position deferred events of different kinds
        strip: Remove deletion placeholders from the returned sequences
        verbose: Print progress information

    Returns:
        Tuple of (haplotype 1, haplotype 2) dictionaries mapping chromosome
        names to sequence strings; haplotype 2 is None unless diploid

    Examples:
        # Haploid genome from SNVs only
        h1, _ = get_personal_genome('hg19.fa', snv_fn='masterVar.tsv')

        # Diploid female genome with a stricter zygosity gate
        h1, h2 = get_personal_genome('hg19.fa', sv_fn='hcSV.tsv', diploid=True,
                                     sex='F', zygosity_threshold=0.01)
    """
    options = GenomeOptions(
        reference=reference_fn,
        snv=snv_fn,
        sv=sv_fn,
        types=types,
        sex=sex,
        diploid=diploid,
        verbose=verbose,
        zygosity_threshold=zygosity_threshold,
        key_events_by_kind=key_events_by_kind,
    )
    genome = PersonalGenomeBuilder(options).build()
    h1 = genome.h1.sequences(strip=strip)
    h2 = genome.h2.sequences(strip=strip) if genome.h2 is not None else None
    return h1, h2


def write_personal_genome(options: GenomeOptions) -> List[str]:
    """
    Build a personal genome and write it as FASTA.

    Args:
        options: Run configuration; ``out`` is required

    Returns:
        Paths written (one per haplotype)

    Raises:
        UsageError: If the options are incomplete
        FileAccessError: If an input cannot be read or an output written
    """
    options.validate()
    builder = PersonalGenomeBuilder(options)
    builder.build()
    return builder.write()
