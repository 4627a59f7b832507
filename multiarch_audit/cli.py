#!/usr/bin/env python3

"""
Audit head bundles of an index for consistent multi-architecture support.

Input is a YAML (or JSON) dump of the index's flattened bundle records.  For
every head-of-channel bundle, each related and install image is inspected
using `<engine> manifest inspect`, and the claimed architectures are checked
against the labels, annotations and manifest-lists found.  The resulting
report is written as JSON.

Defaults for --engine and --filter are read from $MULTIARCH_CONTAINER_ENGINE
and $MULTIARCH_FILTER respectively.
"""

import argparse
import json
import sys

from multiarch_audit.aggregator import build_report
from multiarch_audit.inspector import ManifestInspector
from multiarch_audit.loader import LoadError, load
from multiarch_audit.util import CONTAINER_ENGINES, config_from_env, dbg, err, setup_logging


def get_args(argv):
    """Return parsed argument namespace object."""
    defaults = config_from_env()
    parser = argparse.ArgumentParser(prog="multiarch-audit", description=__doc__,
                                     formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument('-v', '--verbose',
                        dest='verbose', action='store_true', default=False,
                        help="Show internal debugging/processing details")
    parser.add_argument('-e', '--engine',
                        dest='engine', default=defaults["engine"], choices=CONTAINER_ENGINES,
                        help=f"Container engine used to inspect manifests. Default: '{defaults['engine']}'")
    parser.add_argument('-f', '--filter',
                        dest='name_filter', default=defaults["name_filter"], metavar='<substring>',
                        help="Only audit packages whose name contains <substring>")
    parser.add_argument('-o', '--output',
                        dest='output', default=None, metavar='<filepath>',
                        help="Write the JSON report to <filepath> instead of stdout")
    parser.add_argument('bundles', type=argparse.FileType("rt"), metavar='<bundles filepath>',
                        help="YAML or JSON dump of the index bundle records")
    return parser.parse_args(args=argv[1:])


def write_report(report, output):
    """Write report to the output file object as indented JSON."""
    json.dump(report.as_dict(), output, indent=2)
    output.write("\n")


def main(argv=None):
    """Load bundle records, build the report, write it out as JSON."""
    if argv is None:
        argv = sys.argv
    args = get_args(argv)
    setup_logging(args.verbose)
    dbg(f"Using container engine '{args.engine}' and filter '{args.name_filter}'")

    with args.bundles:
        try:
            index_image, records = load(args.bundles)
        except LoadError as xcpt:
            err(f"Unable to load '{args.bundles.name}': {xcpt}")

    # Defaults from $MULTIARCH_CONTAINER_ENGINE bypass argparse choices
    try:
        inspector = ManifestInspector(args.engine)
    except ValueError as xcpt:
        err(str(xcpt))

    report = build_report(records, index_image, inspector, name_filter=args.name_filter)
    if not report.packages:
        err("No data was found for the criteria informed. "
            "Please, ensure that you provide valid information.")

    # Only touch the output file once there is a report to write
    if args.output is None:
        write_report(report, sys.stdout)
    else:
        with open(args.output, "w", encoding="utf-8") as output_file:
            write_report(report, output_file)
    return 0


if __name__ == "__main__":
    sys.exit(main())
