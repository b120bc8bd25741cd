#!/usr/bin/env python3
"""
API call graph generator
------------------------
Reads compiled .class files and writes:
- full_call_graph.json                 every caller -> callees edge
- <VERB>_<path>.json                   the subgraph reachable from each HTTP endpoint
- <VERB>_<path>_method_bodies.json     bodies of those methods, in call order
- controller_method_bodies.json        same, for controller methods with no mapping

USAGE EXAMPLES
--------------
# Analyse a Maven build, write to ./output:
api-call-graph /path/to/project/target/classes

# Choose the output directory, skip body extraction:
api-call-graph /path/to/project/target/classes ./graphs --no-bodies

DEPENDENCIES
------------
    pip install tree-sitter tree-sitter-java
"""

import argparse
import logging
import sys

from api_call_graph.config import get_config
from api_call_graph.errors import InputDirectoryError, OutputDirectoryError
from api_call_graph.outputs.output import print_summary
from api_call_graph.pipeline import AnalysisPipeline

logger = logging.getLogger(__name__)


def setup_logging(level: str = "WARNING"):
    """Configure logging to stderr."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="api-call-graph",
        description="Build call graphs and method-body bundles for the HTTP endpoints of compiled Java classes",
    )
    parser.add_argument("classes_dir", help="Directory holding the compiled .class files (e.g. target/classes)")
    parser.add_argument(
        "output_dir",
        nargs="?",
        default=None,
        help="Where to write the JSON artifacts (default: $API_CALL_GRAPH_OUTPUT_DIR or ./output)",
    )
    parser.add_argument(
        "--no-bodies",
        dest="extract_method_bodies",
        action="store_false",
        default=None,
        help="Skip method body extraction",
    )
    parser.add_argument(
        "--no-filter",
        dest="filter_generated_methods",
        action="store_false",
        default=None,
        help="Keep generated getters/setters/builders in the body bundles",
    )
    parser.add_argument(
        "--exclude-prefix",
        dest="excluded_prefixes",
        action="append",
        default=None,
        metavar="PREFIX",
        help="Callee prefix to leave out of the graph (repeatable; replaces the default java./javax./jdk./sun.)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress (INFO level)")
    return parser


def run(args: list[str]) -> int:
    """
    Runs one analysis. Returns the process exit code: 0 on success (even if
    some units or artifacts failed), 1 for fatal setup problems.
    """
    parsed = create_parser().parse_args(args)
    config = get_config(
        parsed.classes_dir,
        output_dir=parsed.output_dir,
        extract_method_bodies=parsed.extract_method_bodies,
        filter_generated_methods=parsed.filter_generated_methods,
        excluded_prefixes=tuple(parsed.excluded_prefixes) if parsed.excluded_prefixes else None,
        log_level="INFO" if parsed.verbose else None,
    )
    setup_logging(config.log_level)

    logger.info("Reading classes from: %s", config.classes_dir)
    logger.info("Output will be written to: %s", config.output_dir)

    try:
        summary = AnalysisPipeline(config).run()
    except (InputDirectoryError, OutputDirectoryError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print_summary(summary)
    return 0


def main():
    sys.exit(run(sys.argv[1:]))


if __name__ == "__main__":
    main()
