"""Random forest land-cover classification entry point for landcover_rf."""
import argparse
import logging
import sys

from .config import ConfigurationError
from .config.cli import add_classification_args, build_classification_config
from .pipeline import run_pipeline


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments for a classification run.

    Args:
        argv: Optional argument list. If None, uses sys.argv.
    """
    parser = argparse.ArgumentParser(
        description=(
            "Build a Sentinel-2 / Sentinel-1 / terrain feature stack, train a random "
            "forest on labeled points, validate it, and export the land-cover map."
        )
    )
    add_classification_args(parser)

    args = parser.parse_args(argv)

    # If YAML config is provided, defer validation to config loading
    if args.config is None:
        if not args.aoi:
            parser.error("--aoi or LANDCOVER_AOI must be supplied.")
        if not args.labels:
            parser.error("--labels or LANDCOVER_LABELS must be supplied.")
        if not args.output_dir:
            parser.error("--output-dir or LANDCOVER_OUTPUT_DIR must be supplied.")

    return args


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = build_classification_config(args)
    except (ConfigurationError, FileNotFoundError, ValueError) as e:
        logging.error("Configuration error: %s", e)
        sys.exit(1)

    try:
        result = run_pipeline(config)
    except (FileNotFoundError, ValueError) as e:
        logging.error("Classification failed: %s", e)
        sys.exit(1)
    except Exception as e:
        logging.exception("Unexpected error during classification: %s", e)
        sys.exit(1)

    matrix = result.training.matrix
    logging.info(
        "Done: overall accuracy %.4f, kappa %.4f; report at %s",
        matrix.accuracy,
        matrix.kappa,
        result.report_path,
    )
    if any(not export.ok for export in result.exports):
        sys.exit(2)


if __name__ == "__main__":
    main()
