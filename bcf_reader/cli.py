"""Command line interface for bcf_reader.

Current subcommands:
	header    – summarise the header dictionary (contigs, FILTER, INFO, FORMAT, samples)
	view      – print records as VCF data lines
	sites     – write a site-level TSV table
	genotypes – write a long-form genotype TSV table

Example:
	python -m bcf_reader.cli sites --bcf calls.bcf.gz --out sites.tsv --info DP AF
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .config import ID_SCHEMES, ReaderOptions
from .core.errors import BCFError
from .io import BCFReader
from .tables import genotype_table, site_table
from .utils import format_vcf_line


def _options(args: argparse.Namespace) -> ReaderOptions:
	return ReaderOptions(
		on_error="skip" if args.skip_invalid else "abort",
		lazy=args.lazy,
		id_scheme=args.id_scheme,
	)


def _open(args: argparse.Namespace) -> BCFReader:
	return BCFReader(args.bcf, _options(args), max_records=args.max_site)


def _report_skipped(reader: BCFReader) -> None:
	if reader.skipped:
		print(f"[WARNING] {reader.skipped:,} malformed records skipped")


def cmd_header(args: argparse.Namespace) -> None:
	with _open(args) as reader:
		d = reader.header
		print(f"BCF version: {reader.version[0]}.{reader.version[1]}")
		print(f"fileformat: {d.fileformat or '.'}  id scheme: {d.id_scheme}")
		for title, namespace in (("contig", d.contigs), ("FILTER", d.filters), ("INFO", d.info), ("FORMAT", d.formats)):
			print(f"{title} ({len(namespace)}):")
			for name, entry in namespace.items():
				extra = ""
				if entry.type:
					extra = f"\tNumber={entry.number}\tType={entry.type}"
				elif entry.length is not None:
					extra = f"\tlength={entry.length}"
				print(f"  {entry.id}\t{name}{extra}")
		print(f"samples ({len(d.samples)}): {', '.join(d.samples)}")


def cmd_view(args: argparse.Namespace) -> None:
	with _open(args) as reader:
		if args.with_header:
			sys.stdout.write(reader.header.text.rstrip("\n") + "\n")
		for rec in reader:
			sys.stdout.write(format_vcf_line(rec) + "\n")
		_report_skipped(reader)


def cmd_sites(args: argparse.Namespace) -> None:
	out = Path(args.out)
	out.parent.mkdir(parents=True, exist_ok=True)
	with _open(args) as reader:
		df = site_table(reader, info_fields=args.info, normalize_chroms=args.strip_chr)
		_report_skipped(reader)
	df.to_csv(out, sep="\t", index=False)
	print(f"{len(df):,} sites written to {out}")


def cmd_genotypes(args: argparse.Namespace) -> None:
	out = Path(args.out)
	out.parent.mkdir(parents=True, exist_ok=True)
	with _open(args) as reader:
		df = genotype_table(reader, fields=args.fields, samples=args.samples)
		_report_skipped(reader)
	if df.empty:
		print("No genotype records found.")
		return
	df.to_csv(out, sep="\t", index=False)
	print(f"{len(df):,} genotypes written to {out}")


def _add_common(sp: argparse.ArgumentParser) -> None:
	sp.add_argument("--bcf", required=True, help="Input BCF file (plain, gzip or BGZF)")
	sp.add_argument("--max-site", type=int, default=None, help="Limit number of records decoded (debug)")
	sp.add_argument("--skip-invalid", action="store_true", help="Skip malformed records instead of aborting")
	sp.add_argument("--lazy", action="store_true", help="Decode INFO/FORMAT only when accessed")
	sp.add_argument("--id-scheme", choices=ID_SCHEMES, default="auto", help="Header dictionary ID assignment")


def build_parser() -> argparse.ArgumentParser:
	p = argparse.ArgumentParser(prog="bcf_reader", description="BCF decoding toolkit")
	p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
	sub = p.add_subparsers(dest="command")

	sp = sub.add_parser("header", help="Summarise the header dictionary")
	_add_common(sp)
	sp.set_defaults(func=cmd_header)

	sp2 = sub.add_parser("view", help="Print records as VCF lines")
	_add_common(sp2)
	sp2.add_argument("--with-header", action="store_true", help="Print the embedded header text first")
	sp2.set_defaults(func=cmd_view)

	sp3 = sub.add_parser("sites", help="Site-level TSV table")
	_add_common(sp3)
	sp3.add_argument("--out", required=True, help="Output TSV path")
	sp3.add_argument("--info", nargs="*", default=[], help="INFO keys to add as columns")
	sp3.add_argument("--strip-chr", action="store_true", help="Strip a leading 'chr' from chromosome names")
	sp3.set_defaults(func=cmd_sites)

	sp4 = sub.add_parser("genotypes", help="Long-form genotype TSV table")
	_add_common(sp4)
	sp4.add_argument("--out", required=True, help="Output TSV path")
	sp4.add_argument("--fields", nargs="*", default=["GT"], help="FORMAT keys to export")
	sp4.add_argument("--samples", nargs="*", default=None, help="Restrict to these samples")
	sp4.set_defaults(func=cmd_genotypes)
	return p


def main(argv=None):
	parser = build_parser()
	args = parser.parse_args(argv)
	logging.basicConfig(
		level=logging.DEBUG if args.verbose else logging.INFO,
		format="[%(asctime)s] [%(levelname)s] %(message)s",
		datefmt="%H:%M:%S",
	)
	if not hasattr(args, 'func'):
		parser.print_help()
		return 1
	try:
		args.func(args)
	except BCFError as exc:
		print(f"[ERROR] {exc}", file=sys.stderr)
		return 2
	return 0


if __name__ == "__main__":  # pragma: no cover
	sys.exit(main())
