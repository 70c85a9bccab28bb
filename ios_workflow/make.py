import argparse
import configparser
import logging
import os
import traceback

from .config import DEFAULT_MIN_IOS_VERSION, load_build_config
from .errors import BuildError
from .pipeline import Pipeline, PipelineOptions, BuildContext
from .tools import DEFAULT_TIMEOUT

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

logger = logging.getLogger('ios-workflow')


def read_cli_arguments(argv=None):
    """
    Reads command line arguments for the iOS workflow.
    Every argument is optional: with none, the build reads the environment
    and runs in the current directory.
    """
    parser = argparse.ArgumentParser(description='Prepare, build and package a Flutter iOS app')

    parser.add_argument('--project-dir',
                        default='.',
                        help='Flutter project root (default: current directory)')

    parser.add_argument('--conffile',
                        help='Path to configuration file in properties format. '
                             'Values in its DEFAULT section override environment variables.')

    parser.add_argument('--no-icon-fix',
                        action='store_true',
                        help='Skip rewriting and verifying the app icon set')

    parser.add_argument('--strict-verification',
                        action='store_true',
                        help='Fail when stale signing or deployment-target markers survive in Pods')

    parser.add_argument('--min-ios-version',
                        default=DEFAULT_MIN_IOS_VERSION,
                        help=f'Minimum iOS deployment target (default: {DEFAULT_MIN_IOS_VERSION})')

    parser.add_argument('--timeout',
                        type=int,
                        default=DEFAULT_TIMEOUT,
                        help='Timeout in seconds for each external tool invocation')

    parser.add_argument('--require-helper',
                        action='append',
                        default=[],
                        metavar='PATH',
                        help='Helper script that must exist before the build starts (repeatable)')

    parser.add_argument('--verbose',
                        action='store_true',
                        help='Enable debug logging')

    return parser.parse_args(argv)


def main(argv=None):
    args = read_cli_arguments(argv)

    if args.verbose:
        logger.setLevel(logging.DEBUG)

    project_dir = os.path.abspath(args.project_dir)
    logger.info(f"🚀 Starting iOS workflow in {project_dir}")

    try:
        config = load_build_config(conffile=args.conffile, min_ios_version=args.min_ios_version)
    except (FileNotFoundError, configparser.Error) as e:
        logger.error(f"Error: {e}")
        return 1

    options = PipelineOptions(
        apply_icon_fix=not args.no_icon_fix,
        strict_verification=args.strict_verification,
        required_helpers=tuple(args.require_helper),
        timeout=args.timeout,
    )
    pipeline = Pipeline(BuildContext(project_dir=project_dir, config=config, options=options))

    try:
        pipeline.run()
    except BuildError as e:
        logger.error(f"✗ [{e.label}] {e}")
        for item in e.items:
            logger.error(f"  - {item}")
        logger.debug(f"Stack trace: {traceback.format_exc()}")
        return 1
    except Exception as e:
        stack_trace = traceback.format_exc()
        logger.error(f"Error: {e}")
        logger.error(f"Stack trace: {stack_trace}")
        return 1

    context = pipeline.context
    for warning in context.warnings:
        logger.warning(f"⚠ {warning}")
    logger.info(f"📱 IPA: {context.artifact_path}")
    return 0

