"""
httprobe CLI

Command-line interface: reads hosts on stdin, prints matching URLs on stdout.
"""

import asyncio
import argparse
import signal
import sys
from typing import List, Optional
import logging

from pydantic import ValidationError

from . import __version__
from .errors import PatternCompilationError
from .ingestion import read_hosts
from .matcher import MatcherSet, load_patterns
from .orchestrator import ProbePipeline
from .schemas import DEFAULT_CONCURRENCY, DEFAULT_TIMEOUT_MS, ProbeConfig

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

EXIT_OK = 0
EXIT_PATTERN_ERROR = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def parse_args(argv: Optional[List[str]] = None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        prog='httprobe',
        description='HTTP toolkit that allows probing many hosts.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Print every host answering over https or http
  cat hosts.txt | httprobe

  # 200 probes in flight, 3 second deadline
  cat hosts.txt | httprobe -t 200 -T 3000

  # Only hosts whose response mentions nginx or Apache
  cat hosts.txt | httprobe -r 'nginx' -r 'Apache'

  # Patterns from a file, one per line
  cat hosts.txt | httprobe -R patterns.txt
        """
    )

    optimizations = parser.add_argument_group('Optimizations')
    optimizations.add_argument(
        '-T', '--timeout',
        type=int,
        default=DEFAULT_TIMEOUT_MS,
        help=f'Timeout in milliseconds (default: {DEFAULT_TIMEOUT_MS})'
    )

    rate_limit = parser.add_argument_group('Rate-Limit')
    rate_limit.add_argument(
        '-t', '--tasks',
        type=int,
        default=DEFAULT_CONCURRENCY,
        help=f'Number of concurrent requests (default: {DEFAULT_CONCURRENCY})'
    )

    matching = parser.add_argument_group('Matching')
    matching.add_argument(
        '-r', '--regex',
        action='append',
        default=[],
        metavar='PATTERN',
        help='Only print hosts whose response matches PATTERN (repeatable)'
    )
    matching.add_argument(
        '-R', '--regex-file',
        metavar='FILE',
        help='File containing patterns (one per line)'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Log progress to stderr (-vv for per-host details)'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    return parser.parse_args(argv)


def configure_logging(verbosity: int) -> None:
    """Send logs to stderr so stdout only carries results"""
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)
    # per-request logs from the HTTP stack are noise even at -vv
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)


def build_config(args) -> ProbeConfig:
    """Build the probe configuration from parsed arguments"""
    patterns = list(args.regex)
    if args.regex_file:
        patterns.extend(load_patterns(args.regex_file))

    return ProbeConfig(
        timeout_ms=args.timeout,
        concurrency=args.tasks,
        patterns=patterns,
    )


def _install_signal_handlers(pipeline: ProbePipeline) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, pipeline.interrupt)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no signal handler support
            logger.debug(f"Cannot install handler for {sig!r}")


async def probe_command(config: ProbeConfig, matchers: MatcherSet) -> int:
    """Run the pipeline over stdin"""
    pipeline = ProbePipeline(config, sys.stdout, matchers=matchers)
    _install_signal_handlers(pipeline)

    stats = await pipeline.run(read_hosts(sys.stdin.buffer))

    if stats.interrupted:
        return EXIT_INTERRUPTED
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = build_config(args)
    except ValidationError as e:
        for error in e.errors():
            field = '.'.join(str(part) for part in error['loc'])
            logger.error(f"Invalid {field}: {error['msg']}")
        return EXIT_USAGE
    except OSError as e:
        logger.error(f"Failed to read patterns from file: {e}")
        return EXIT_PATTERN_ERROR

    # Compile before reading any input so a bad pattern produces no output
    try:
        matchers = MatcherSet.compile(config.patterns)
    except PatternCompilationError as e:
        logger.error(str(e))
        return EXIT_PATTERN_ERROR

    return asyncio.run(probe_command(config, matchers))


if __name__ == '__main__':
    sys.exit(main())
