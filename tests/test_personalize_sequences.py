"""
Tests for the personal genome functions in haplogen.

This file tests get_personal_genome and the SNV classification rules using
small reference genomes and variant tables written to a temporary directory.
"""

import os
import unittest
import tempfile
import warnings

import pandas as pd
from pyfaidx import Fasta

import haplogen as hg
from haplogen.genome import Genome
from haplogen.personalize import VariantClassifier
from haplogen.variant_utils import SnvRecord
from test_utils import SNV_HEADER, SV_HEADER, random_sequence, snv_row, sv_row, write_reference, write_table


class TestPersonalizeGenome(unittest.TestCase):
    """End-to-end genome personalization from files."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.data_dir = self.tmp.name
        self.reference = {
            "chr1": random_sequence(200, seed=1),
            "chr2": random_sequence(120, seed=2),
            "chrX": random_sequence(60, seed=3),
            "chrY": random_sequence(30, seed=4),
            "chrM": random_sequence(20, seed=5),
        }
        self.reference_fa = write_reference(os.path.join(self.data_dir, "ref.fa"), self.reference)

    def tearDown(self):
        self.tmp.cleanup()

    def _snv(self, rows, name="snv.tsv"):
        return write_table(os.path.join(self.data_dir, name), rows, header=SNV_HEADER)

    def _sv(self, rows, name="sv.tsv"):
        return write_table(os.path.join(self.data_dir, name), rows, header=SV_HEADER)

    def test_snp_substitution(self):
        """Same-length substitution changes one base and keeps the length."""
        ref_base = self.reference["chr1"][10]
        alt = "G" if ref_base != "G" else "C"
        snv = self._snv([snv_row("chr1", 10, 11, "snp", ref_base, alt)])

        h1, h2 = hg.get_personal_genome(self.reference_fa, snv_fn=snv)

        self.assertIsNone(h2)
        self.assertEqual(h1["chr1"][10], alt)
        self.assertEqual(len(h1["chr1"]), 200)
        self.assertEqual(h1["chr1"][:10], self.reference["chr1"][:10])
        self.assertEqual(h1["chr1"][11:], self.reference["chr1"][11:])

    def test_deletion_marking(self):
        """A del record leaves placeholders that vanish on output."""
        ref_allele = self.reference["chr1"][20:24]
        snv = self._snv([snv_row("chr1", 20, 24, "del", ref_allele, ref_allele[0])])

        raw, _ = hg.get_personal_genome(self.reference_fa, snv_fn=snv, strip=False)
        self.assertEqual(raw["chr1"][20:24], "XXXX")
        self.assertEqual(len(raw["chr1"]), 200)

        h1, _ = hg.get_personal_genome(self.reference_fa, snv_fn=snv)
        self.assertEqual(len(h1["chr1"]), 196)
        self.assertEqual(h1["chr1"], self.reference["chr1"][:20] + self.reference["chr1"][24:])

    def test_insertion(self):
        """An ins record keeps the anchor base and adds the allele after it."""
        snv = self._snv([snv_row("chr2", 30, 30, "ins", "", "AAAA")])
        h1, _ = hg.get_personal_genome(self.reference_fa, snv_fn=snv)
        seq = self.reference["chr2"]
        self.assertEqual(h1["chr2"], seq[:31] + "AAAA" + seq[31:])

    def test_empty_tables_round_trip(self):
        """No variants: output equals the reference modulo line wrapping."""
        snv = self._snv([])
        sv = self._sv([])
        out = os.path.join(self.data_dir, "out.fa")

        hg.write_personal_genome(hg.GenomeOptions(reference=self.reference_fa, snv=snv, sv=sv, out=out))

        with Fasta(out) as result:
            self.assertEqual(list(result.keys()), list(self.reference))
            for chrom, seq in self.reference.items():
                self.assertEqual(str(result[chrom]), seq)
        with open(out) as handle:
            self.assertTrue(all(len(line.rstrip("\n")) <= 70 for line in handle))

    def test_diploid_output_files(self):
        """Diploid mode writes haplotype 2 next to haplotype 1."""
        ref_base = self.reference["chr1"][5]
        alt = "T" if ref_base != "T" else "A"
        snv = self._snv([snv_row("chr1", 5, 6, "snp", ref_base, alt, ref_base, call="het-ref")])
        out = os.path.join(self.data_dir, "out.fa")

        written = hg.write_personal_genome(
            hg.GenomeOptions(reference=self.reference_fa, snv=snv, out=out, diploid=True, sex="F")
        )

        self.assertEqual(written, [out, out + "_2"])
        with Fasta(out) as h1, Fasta(out + "_2") as h2:
            self.assertEqual(str(h1["chr1"])[5], alt)
            self.assertEqual(str(h2["chr1"])[5], ref_base)
            self.assertIn("chrY", h1.keys())
            self.assertEqual(list(h2.keys()), ["chr1", "chr2", "chrX"])

    def test_snv_and_sv_combined(self):
        """Immediate SNV edits stay put when SV events shift coordinates."""
        seq1 = self.reference["chr1"]
        ref_base = seq1[150]
        alt = "A" if ref_base != "A" else "C"
        snv = self._snv([snv_row("chr1", 150, 151, "snp", ref_base, alt)])
        sv = self._sv([sv_row("tandem-duplication", "1", "chr1", 10, 5, "+", "chr1", 15, 0, "+")])

        h1, _ = hg.get_personal_genome(self.reference_fa, snv_fn=snv, sv_fn=sv)

        expected = seq1[:10] + seq1[10:15] * 2 + seq1[15:150] + alt + seq1[151:]
        self.assertEqual(h1["chr1"], expected)

    def test_type_filter(self):
        """Types missing from the allow-list are skipped."""
        ref_base = self.reference["chr1"][10]
        alt = "G" if ref_base != "G" else "C"
        snv = self._snv([snv_row("chr1", 10, 11, "snp", ref_base, alt)])
        h1, _ = hg.get_personal_genome(self.reference_fa, snv_fn=snv, types="ins,del")
        self.assertEqual(h1["chr1"], self.reference["chr1"])

    def test_verbose_output(self):
        snv = self._snv([snv_row("chrZ", 1, 2, "snp", "A", "G")])
        from io import StringIO
        from contextlib import redirect_stdout

        buffer = StringIO()
        with redirect_stdout(buffer):
            hg.get_personal_genome(self.reference_fa, snv_fn=snv, verbose=True)
        output = buffer.getvalue()
        self.assertIn("SNV: 1 records (snp=1)", output)
        self.assertIn("chromosome not in reference", output)
        self.assertIn("'chrZ'", output)


class TestSnvClassification(unittest.TestCase):
    """Per-record SNV routing rules."""

    def setUp(self):
        self.seq = "ACGTACGTACGTACGTACGT"
        self.genome = Genome.from_reference({"chr1": self.seq, "chrM": "AAAAAAAA"}, diploid=True, sex="M")
        self.classifier = VariantClassifier(self.genome)

    def record(self, start, end, variant_type, ref, allele1, allele2, call="het", chrom="chr1"):
        return SnvRecord(None, chrom, start, end, call, variant_type, ref, allele1, allele2)

    def test_per_haplotype_alleles(self):
        self.classifier.classify_snv(self.record(0, 1, "snp", "A", "G", "A"))
        self.assertEqual(self.genome.h1["chr1"].read(0, 1), "G")
        self.assertEqual(self.genome.h2["chr1"].read(0, 1), "A")

    def test_unknown_allele_ignored(self):
        self.classifier.classify_snv(self.record(0, 1, "snp", "A", "?", "?"))
        self.assertEqual(str(self.genome.h1["chr1"]), self.seq)
        self.assertEqual(self.classifier.applied_count, 0)

    def test_heterozygous_deletion_only_masks_one_haplotype(self):
        self.classifier.classify_snv(self.record(4, 8, "del", "ACGT", "A", "ACGT"))
        self.assertEqual(self.genome.h1["chr1"].read(4, 4), "XXXX")
        self.assertEqual(self.genome.h2["chr1"].read(4, 4), "ACGT")

    def test_deletion_with_empty_allele_is_not_applied(self):
        self.classifier.classify_snv(self.record(4, 8, "del", "ACGT", "", ""))
        self.assertEqual(str(self.genome.h1["chr1"]), self.seq)
        self.assertEqual(len(self.classifier.queues[1]), 0)

    def test_length_changing_alleles_are_deferred(self):
        self.classifier.classify_snv(self.record(2, 2, "ins", "", "TT", ""))
        self.assertEqual(len(self.classifier.queues[1]), 1)
        self.assertEqual(len(self.classifier.queues[2]), 1)
        event = self.classifier.queues[1].pending("chr1")[0]
        self.assertEqual((event.kind, event.dest_start, event.length, event.payload), ("ins", 2, 0, "TT"))
        self.assertEqual(str(self.genome.h1["chr1"]), self.seq)

    def test_skips(self):
        self.classifier.classify_snv(self.record(0, 1, "snp", "A", "G", "G", call="no-call"))
        self.classifier.classify_snv(self.record(0, 1, "ref", "A", "G", "G"))
        self.classifier.classify_snv(self.record(0, 1, "complex", "A", "G", "G"))
        self.classifier.classify_snv(self.record(0, 1, "snp", "A", "G", "G", chrom="chr9"))
        reasons = [r[-1] for r in self.classifier.skipped_records]
        self.assertEqual(reasons, ["no_call", "unsupported_type", "unsupported_type", "unknown_chromosome"])
        self.assertEqual(str(self.genome.h1["chr1"]), self.seq)

    def test_mitochondrial_record_only_touches_h1(self):
        self.classifier.classify_snv(self.record(0, 1, "snp", "A", "C", "C", chrom="chrM"))
        self.assertEqual(self.genome.h1["chrM"].read(0, 1), "C")
        self.assertNotIn("chrM", self.genome.h2)

    def test_out_of_range_record_warns(self):
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            df = pd.DataFrame(
                [
                    dict(line=1, chrom="chr1", start=18, end=22, call="hom", variant_type="snp",
                         ref="ACGT", allele1="TTTT", allele2="TTTT"),
                    dict(line=2, chrom="chr1", start=0, end=1, call="hom", variant_type="snp",
                         ref="A", allele1="C", allele2="C"),
                ]
            )
            self.classifier.apply_snv_table(df)
        self.assertTrue(any("outside chr1" in str(w.message) for w in caught))
        self.assertEqual(len(self.genome.h1["chr1"]), len(self.seq))
        self.assertEqual(self.genome.h1["chr1"].read(0, 1), "C")
        self.assertEqual(self.classifier.skipped_records[0][-1], "out_of_range")


if __name__ == "__main__":
    unittest.main()
