"""
Tests for the haplogen command line interface.
"""

import pytest
from pyfaidx import Fasta

import haplogen as hg
from haplogen.cli import build_parser, main
from test_utils import SNV_HEADER, SV_HEADER, random_sequence, snv_row, sv_row, write_reference, write_table

REFERENCE = {
    "chr1": random_sequence(100, seed=41),
    "chrX": random_sequence(50, seed=42),
    "chrY": random_sequence(20, seed=43),
}


@pytest.fixture
def inputs(tmp_path):
    reference = write_reference(tmp_path / "ref.fa", REFERENCE)
    ref_base = REFERENCE["chr1"][10]
    alt = "G" if ref_base != "G" else "C"
    snv = write_table(tmp_path / "snv.tsv", [snv_row("chr1", 10, 11, "snp", ref_base, alt)], header=SNV_HEADER)
    sv = write_table(tmp_path / "sv.tsv", [sv_row("deletion", "1", "chr1", 50, 10)], header=SV_HEADER)
    return reference, snv, sv, alt


class TestParser:

    def test_defaults(self):
        args = build_parser().parse_args(["-r", "ref.fa", "-s", "snv.tsv", "-o", "out.fa"])
        assert args.sex == "M"
        assert not args.diploid
        assert args.zygosity_threshold == 0.1
        assert args.line_width == 70
        assert hg.GenomeOptions(types=args.type).types == hg.DEFAULT_TYPES

    def test_sex_is_case_insensitive(self):
        args = build_parser().parse_args(["-x", "f"])
        assert args.sex == "F"

    def test_invalid_sex(self, capsys):
        with pytest.raises(SystemExit) as info:
            build_parser().parse_args(["-x", "Q"])
        assert info.value.code == 2
        assert "invalid choice" in capsys.readouterr().err


class TestMain:

    def test_haploid_run(self, tmp_path, inputs):
        reference, snv, sv, alt = inputs
        out = str(tmp_path / "out.fa")

        assert main(["-r", reference, "-s", snv, "-v", sv, "-o", out]) == 0

        with Fasta(out) as result:
            seq = str(result["chr1"])
        assert seq[10] == alt
        assert len(seq) == 90
        assert not (tmp_path / "out.fa_2").exists()

    def test_diploid_run(self, tmp_path, inputs):
        reference, snv, _, _ = inputs
        out = str(tmp_path / "out.fa")

        assert main(["-r", reference, "-s", snv, "-o", out, "-d", "-x", "F", "--line-width", "30"]) == 0

        with Fasta(out + "_2") as h2:
            assert list(h2.keys()) == ["chr1", "chrX"]
        with open(out) as handle:
            assert max(len(line.rstrip("\n")) for line in handle) == 30

    def test_type_filter(self, tmp_path, inputs):
        reference, snv, sv, _ = inputs
        out = str(tmp_path / "out.fa")

        assert main(["-r", reference, "-s", snv, "-v", sv, "-o", out, "-t", "deletion"]) == 0

        with Fasta(out) as result:
            seq = str(result["chr1"])
        assert seq[:50] == REFERENCE["chr1"][:50]
        assert len(seq) == 90

    def test_verbose(self, tmp_path, inputs, capsys):
        reference, snv, _, _ = inputs
        out = str(tmp_path / "out.fa")
        assert main(["-r", reference, "-s", snv, "-o", out, "--verbose"]) == 0
        stdout = capsys.readouterr().out
        assert "Immediate edits: 1" in stdout
        assert f"Done: {out}" in stdout

    @pytest.mark.parametrize(
        "argv",
        [
            ["-s", "snv.tsv", "-o", "out.fa"],
            ["-r", "ref.fa", "-o", "out.fa"],
            ["-r", "ref.fa", "-s", "snv.tsv"],
            ["-r", "ref.fa", "-s", "snv.tsv", "-o", "out.fa", "--line-width", "0"],
        ],
    )
    def test_usage_errors(self, argv, capsys):
        with pytest.raises(SystemExit) as info:
            main(argv)
        assert info.value.code == 2
        assert "usage:" in capsys.readouterr().err

    def test_missing_reference(self, tmp_path, inputs, capsys):
        _, snv, _, _ = inputs
        out = tmp_path / "out.fa"
        assert main(["-r", str(tmp_path / "nope.fa"), "-s", snv, "-o", str(out)]) == 1
        assert "haplogen:" in capsys.readouterr().err
        assert not out.exists()

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as info:
            main(["--version"])
        assert info.value.code == 0
        assert hg.__version__ in capsys.readouterr().out
