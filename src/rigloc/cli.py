"""Command-line interface for rig localization."""

import argparse
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from rigloc.config import (
    VALID_DESCRIBER_TYPES,
    DescriberPreset,
    RigLocalizationConfig,
    format_validation_errors,
)
from rigloc.errors import RigLocError
from rigloc.estimators import RobustEstimator
from rigloc.pipeline import RunSummary, run_pipeline


def _configure_logging(verbose: bool) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def config_from_args(args: argparse.Namespace) -> RigLocalizationConfig:
    """Build a RigLocalizationConfig from parsed localize/init arguments.

    Raises:
        ValidationError: If an argument value is rejected by the config model.
    """
    data = {
        "sfm_data": str(args.sfm_data),
        "media_paths": [str(p) for p in args.media_path],
        "camera_intrinsics": [str(p) for p in args.camera_intrinsics],
        "calibration": str(args.calibration) if args.calibration else None,
        "descriptor_path": str(args.descriptor_path) if args.descriptor_path else None,
        "describer_types": args.describer_types,
        "preset": args.preset,
        "resection": {
            "estimator": args.resection_estimator,
            "reprojection_error": args.reprojection_error,
            "refine_intrinsics": args.refine_intrinsics,
            "use_localize_rig_naive": args.use_localize_rig_naive,
            "angular_threshold": args.angular_threshold,
        },
        "retrieval": {
            "algorithm": args.algorithm,
            "num_results": args.num_results,
            "max_results": args.max_results,
            "matching_estimator": args.matching_estimator,
            "matching_error": args.matching_error,
            "ratio_threshold": args.ratio_threshold,
        },
        "markers": {"dictionary": args.marker_dictionary},
        "output": {
            "trajectory_path": None if args.no_export else str(args.output),
            "quiet": args.quiet,
        },
    }
    return RigLocalizationConfig.model_validate(data)


def print_summary(summary: RunSummary) -> None:
    """Print the end-of-run report."""
    print(f"\n{'=' * 70}")
    print("Rig Localization Summary")
    print(f"{'=' * 70}\n")
    print(summary.format())
    print(f"\nStatus: {summary.state.value}")
    print(f"{'=' * 70}\n")


def execute(config: RigLocalizationConfig) -> int:
    """Run the pipeline and report.

    Returns:
        Process exit status: 0 when the stream was fully processed (even if
        no frame was localized), 1 otherwise.
    """
    try:
        summary = run_pipeline(config)
    except RigLocError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print_summary(summary)
    if not summary.succeeded:
        print(f"Error: {summary.error}", file=sys.stderr)
        return 1
    return 0


def localize_command(args: argparse.Namespace) -> None:
    """Run the localization pipeline from command-line arguments."""
    _configure_logging(args.verbose)

    try:
        config = config_from_args(args)
    except ValidationError as e:
        print(
            f"Error: Invalid arguments:\n{format_validation_errors(e)}", file=sys.stderr
        )
        sys.exit(1)

    sys.exit(execute(config))


def init_command(args: argparse.Namespace) -> RigLocalizationConfig:
    """Write a YAML config from command-line arguments instead of running."""
    try:
        config = config_from_args(args)
    except ValidationError as e:
        print(
            f"Error: Invalid arguments:\n{format_validation_errors(e)}", file=sys.stderr
        )
        sys.exit(1)

    config.to_yaml(args.config)
    print(f"[OK] Configuration saved to: {args.config}")
    return config


def run_command(config_path: Path, verbose: bool = False, quiet: bool = False) -> None:
    """Run the localization pipeline from a config file.

    Args:
        config_path: Path to the YAML config.
        verbose: If True, set logging to DEBUG level.
        quiet: If True, disable the progress bar.
    """
    _configure_logging(verbose)

    if not config_path.exists():
        print(f"Error: Config file not found: {config_path}", file=sys.stderr)
        sys.exit(1)

    try:
        config = RigLocalizationConfig.from_yaml(config_path)
    except RigLocError as e:
        print(f"Error: Failed to load config: {e}", file=sys.stderr)
        sys.exit(1)

    if quiet:
        config.output.quiet = True

    sys.exit(execute(config))


def _add_localization_arguments(parser: argparse.ArgumentParser) -> None:
    estimators = [e.value for e in RobustEstimator]

    parser.add_argument(
        "--sfm-data",
        type=Path,
        required=True,
        help="Map JSON file (landmarks, views, markers)",
    )
    parser.add_argument(
        "--media-path",
        type=Path,
        nargs="+",
        required=True,
        help="Per-camera media: video, image directory, image list or image",
    )
    parser.add_argument(
        "--camera-intrinsics",
        type=Path,
        nargs="+",
        required=True,
        help="Per-camera intrinsics files, same order as --media-path",
    )
    parser.add_argument(
        "--calibration",
        type=Path,
        default=None,
        help="Rig calibration file (subposes); optional for one camera",
    )
    parser.add_argument(
        "--descriptor-path",
        type=Path,
        default=None,
        help="Folder with map view features (default: folder of --sfm-data)",
    )
    parser.add_argument(
        "--describer-types",
        nargs="+",
        default=["sift"],
        choices=VALID_DESCRIBER_TYPES,
        help="Describer types used for localization (default: sift)",
    )
    parser.add_argument(
        "--preset",
        default=DescriberPreset.NORMAL.value,
        choices=[p.value for p in DescriberPreset],
        help="Feature extraction preset for query images (default: normal)",
    )
    parser.add_argument(
        "--resection-estimator",
        default=RobustEstimator.ACRANSAC.value,
        choices=estimators,
        help="Robust estimator for resection (default: acransac)",
    )
    parser.add_argument(
        "--reprojection-error",
        type=float,
        default=4.0,
        help="Resection threshold in pixels, 0 = automatic with acransac (default: 4.0)",
    )
    parser.add_argument(
        "--refine-intrinsics",
        action="store_true",
        help="Refine camera intrinsics on each localized image",
    )
    parser.add_argument(
        "--use-localize-rig-naive",
        action="store_true",
        help="Derive the rig pose from the best camera instead of joint refinement",
    )
    parser.add_argument(
        "--angular-threshold",
        type=float,
        default=0.1,
        help="Angular inlier threshold in degrees for joint rig refinement (default: 0.1)",
    )
    parser.add_argument(
        "--algorithm",
        default="all_results",
        choices=["first_best", "all_results"],
        help="Retrieval algorithm (default: all_results)",
    )
    parser.add_argument(
        "--num-results",
        type=int,
        default=4,
        help="Map views retrieved per query image (default: 4)",
    )
    parser.add_argument(
        "--max-results",
        type=int,
        default=10,
        help="Maximum matched map views, 0 = no limit (default: 10)",
    )
    parser.add_argument(
        "--matching-estimator",
        default=RobustEstimator.ACRANSAC.value,
        choices=estimators,
        help="Robust estimator for geometric verification (default: acransac)",
    )
    parser.add_argument(
        "--matching-error",
        type=float,
        default=4.0,
        help="Matching threshold in pixels, 0 = automatic with acransac (default: 4.0)",
    )
    parser.add_argument(
        "--ratio-threshold",
        type=float,
        default=0.8,
        help="Nearest-neighbor ratio test threshold (default: 0.8)",
    )
    parser.add_argument(
        "--marker-dictionary",
        default="DICT_4X4_50",
        help="ArUco dictionary for the marker localizer (default: DICT_4X4_50)",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("trackedcameras.json"),
        help="Rig trajectory JSON file (default: trackedcameras.json)",
    )
    parser.add_argument(
        "--no-export",
        action="store_true",
        help="Do not write trajectory files",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Disable the progress bar",
    )


def main() -> None:
    """Main entry point for the rigloc CLI."""
    parser = argparse.ArgumentParser(
        prog="rigloc",
        description="Synchronous localization of a multi-camera rig against a 3D map.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # localize subcommand
    localize_parser = subparsers.add_parser(
        "localize",
        help="Localize a camera rig frame by frame",
    )
    _add_localization_arguments(localize_parser)
    localize_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    # init subcommand
    init_parser = subparsers.add_parser(
        "init",
        help="Write a config YAML from localization arguments",
    )
    _add_localization_arguments(init_parser)
    init_parser.add_argument(
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to output config YAML file (default: config.yaml)",
    )

    # run subcommand
    run_parser = subparsers.add_parser(
        "run",
        help="Localize a camera rig from a config file",
    )
    run_parser.add_argument(
        "config",
        type=Path,
        help="Path to config YAML file",
    )
    run_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    run_parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Disable the progress bar",
    )

    args = parser.parse_args()

    # Dispatch
    if args.command == "localize":
        localize_command(args)
    elif args.command == "init":
        init_command(args)
    elif args.command == "run":
        run_command(
            config_path=args.config,
            verbose=args.verbose,
            quiet=args.quiet,
        )
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
