import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from plot2vega import (
    ChartOptions,
    DescriptorError,
    PlotDescriptor,
    compile_plot,
    write_vega_files,
)

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(levelname)s:%(name)s:%(message)s",
    )


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Compile a plot descriptor into a Vega chart")
    parser.add_argument("path", help="Path to the JSON plot descriptor")
    parser.add_argument(
        "--file-name",
        help="Base name of the written files (default: descriptor file stem)",
    )
    parser.add_argument(
        "--export-path",
        default=".",
        help="Directory receiving the .json and .html files (default: .)",
    )
    parser.add_argument("--x-label", default="x-axis", help="x axis title (default: x-axis)")
    parser.add_argument("--y-label", default="y-axis", help="y axis title (default: y-axis)")
    parser.add_argument("--title", default="Untitled", help="Chart title (default: Untitled)")
    parser.add_argument("--width", type=int, default=500, help="Chart width in pixels (default: 500)")
    parser.add_argument("--height", type=int, default=500, help="Chart height in pixels (default: 500)")
    parser.add_argument(
        "--interactive",
        action="store_true",
        help="Wire click/shift-click legend selection",
    )
    parser.add_argument(
        "--jitter-seed",
        type=int,
        help="Pre-compute jitter offsets with this seed instead of at render time",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (default: INFO)",
    )
    args = parser.parse_args(argv)

    _configure_logging(args.log_level)

    descriptor_path = Path(args.path)
    logger.info("Reading plot descriptor from %s", descriptor_path)
    with open(descriptor_path, encoding="utf-8") as fin:
        payload = json.load(fin)

    try:
        descriptor = PlotDescriptor.from_mapping(payload)
    except DescriptorError as exc:
        logger.error("Invalid descriptor %s: %s", descriptor_path, exc)
        raise SystemExit(1)

    options = ChartOptions(
        title=args.title,
        x_label=args.x_label,
        y_label=args.y_label,
        width=args.width,
        height=args.height,
        interactive=args.interactive,
        jitter_seed=args.jitter_seed,
    )
    result = compile_plot(descriptor, options)
    for diagnostic in result.diagnostics:
        logger.warning("%s: %s", diagnostic.kind, diagnostic.message)

    file_name = args.file_name or descriptor_path.stem
    try:
        json_path, html_path = write_vega_files(result.spec, file_name, args.export_path)
    except ValueError as exc:
        logger.error("Cannot write chart files: %s", exc)
        raise SystemExit(1)

    print(f"Layers: {', '.join(request.kind.value for request in result.requests)}")
    print(f"Rows: {len(result.data.rows)} of {result.data.original_count}")
    print(f"Vega specification written to {json_path}")
    print(f"HTML page written to {html_path}")


if __name__ == "__main__":
    main(sys.argv[1:])
