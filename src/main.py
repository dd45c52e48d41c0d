#!/usr/bin/env python3
"""
===============================================================================
GRAPH KERNEL BENCHMARK - MAIN ENTRY POINT
===============================================================================
Sweep-and-validate benchmark of triangle counting (tc) or local clustering
coefficient (lcc) on one graph.

The driver loads the graph, computes a slow reference result, warms the
kernel up once and validates it, then times every configuration of the sweep
(thread count x engine mode x variant x sort policy) and reports the best.

USAGE:
    python main.py graph.mtx                      # triangle count, config defaults
    python main.py graph.mtx --kernel lcc         # local clustering coefficient
    python main.py graph.mtx --threads 40 0       # 40 host threads, then accelerator
    python main.py graph.mtx --threads auto --schedule-length 5
    python main.py --random 10000 16              # seeded random graph
    python main.py graph.mtx --strict             # abort on result mismatch

OUTPUTS:
    stdout                 - progress lines, averages, best configuration
    stderr                 - per-trial and per-configuration diagnostics
    output/benchmark.log   - log file
    --csv / --plot / --db  - summary table, thread-scaling figure, SQLite store

EXIT STATUS:
    0 on completion (including a tolerated result mismatch), 1 on a fatal
    error (allocation failure, kernel failure, strict mismatch, bad input).

DEPENDENCIES:
    numpy, scipy, pandas, matplotlib, pyyaml
===============================================================================
"""

import sys
import os
import argparse
import time
import logging
from pathlib import Path
from datetime import datetime
from typing import List, Optional

import yaml

# ---------------------------------------------------------------------------
# Path setup: ensure all project modules are importable
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

# ---------------------------------------------------------------------------
# Project imports
# ---------------------------------------------------------------------------
from analytics.environment import ExecutionEnvironment
from analytics.graph import Graph, load_graph, random_graph
from core.errors import BenchmarkError, ConfigurationError
from database.results_db import ResultsDatabase
from performance.report import plot_thread_scaling
from performance.session import BenchmarkSettings, build_session

logger = logging.getLogger('GRAPH_BENCH')

DEFAULT_CONFIG_PATH = PROJECT_ROOT.parent / 'config' / 'benchmark_config.yaml'


def setup_logging(output_dir: str, level: int = logging.INFO) -> None:
    """Log to stdout and to ``<output_dir>/benchmark.log``."""
    Path(output_dir).mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(os.path.join(output_dir, 'benchmark.log'), mode='w')
        ],
        force=True,
    )


def load_config(config_path: Optional[str] = None) -> dict:
    """
    Load benchmark configuration from YAML file.

    Args:
        config_path: Path to YAML config. Defaults to config/benchmark_config.yaml;
            a missing default file yields an empty configuration.

    Returns:
        Dictionary of configuration sections

    Raises:
        ConfigurationError: If the file cannot be read, is not valid YAML, or
            is not a mapping of sections
    """
    if config_path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            logger.info("No configuration file; using built-in defaults")
            return {}
        config_path = str(DEFAULT_CONFIG_PATH)

    logger.info(f"Loading configuration from: {config_path}")
    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration {config_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Malformed configuration {config_path}: {e}") from e
    if not isinstance(config, dict):
        raise ConfigurationError(f"Configuration {config_path} must be a mapping of sections")
    return config


def settings_from_args(config: dict, args: argparse.Namespace) -> BenchmarkSettings:
    """Merge command-line overrides into the ``benchmark`` config section."""
    section = dict(config.get('benchmark', {}) or {})
    if args.kernel:
        section['kernel'] = args.kernel
    if args.trials is not None:
        section['trials'] = args.trials
    if args.threads:
        section['threads'] = args.threads
    if args.schedule_length is not None:
        section['schedule_length'] = args.schedule_length
    if args.variants:
        section['variants'] = args.variants
    if args.sort:
        section['sort_policies'] = args.sort
    if args.tolerance is not None:
        section['tolerance'] = args.tolerance
    if args.strict:
        section['strict_validation'] = True

    allocation = dict(config.get('allocation', {}) or {})
    if args.zero_fill:
        allocation['zero_fill'] = args.zero_fill

    merged = dict(config)
    merged['benchmark'] = section
    merged['allocation'] = allocation
    return BenchmarkSettings.from_config(merged)


def load_input(args: argparse.Namespace) -> Graph:
    if args.random:
        n_vertices, avg_degree = args.random
        try:
            return random_graph(int(n_vertices), float(avg_degree), seed=args.seed)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid --random arguments: {exc}") from exc
    if not args.graph:
        raise ConfigurationError("No input graph: give a file or --random N DEG")
    return load_graph(args.graph)


def run(args: argparse.Namespace) -> int:
    """
    Run one benchmark session.  All fatal errors come back through here: the
    results database is closed and 1 is returned.
    """
    results_db = None
    try:
        config = load_config(args.config)
        settings = settings_from_args(config, args)
        output_cfg = config.get('output', {}) or {}

        graph = load_input(args)
        logger.info(graph.describe())

        db_path = args.db or output_cfg.get('results_db')
        if db_path:
            results_db = ResultsDatabase(db_path)

        environment = ExecutionEnvironment()
        logger.info(f"Execution environment: {environment}")

        session = build_session(graph, settings, environment=environment, results_db=results_db)
        result = session.run()

        csv_path = args.csv or output_cfg.get('summary_csv')
        if csv_path:
            Path(csv_path).parent.mkdir(parents=True, exist_ok=True)
            result.summary.to_csv(csv_path, index=False)
            logger.info(f"Summary saved to {csv_path}")

        plot_path = args.plot or output_cfg.get('scaling_plot')
        if plot_path:
            plot_thread_scaling(result.summary, plot_path,
                                title=f"{settings.kernel.upper()} on {graph.name}")
            logger.info(f"Plot saved to {plot_path}")

        if not result.validation.passed:
            logger.warning("Benchmark completed with a result mismatch")
        return 0

    except BenchmarkError as e:
        logger.error(f"Benchmark failed: {e}", exc_info=logger.isEnabledFor(logging.DEBUG))
        return 1
    finally:
        if results_db is not None:
            results_db.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Sweep-and-validate benchmark of graph kernels',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py graph.mtx                      Triangle count
  python main.py graph.mtx --kernel lcc         Local clustering coefficient
  python main.py graph.mtx --threads 40 0       40 host threads, then accelerator
  python main.py --random 10000 16              Random graph
        """
    )

    parser.add_argument('graph', nargs='?', default=None,
                        help='Graph file (.mtx, .mtx.gz or .npz)')
    parser.add_argument('--kernel', choices=['tc', 'lcc'], default=None,
                        help='Kernel to benchmark (default from config: tc)')
    parser.add_argument('--config', type=str, default=None,
                        help='Path to benchmark config YAML')
    parser.add_argument('--trials', type=int, default=None,
                        help='Timed trials per configuration')
    parser.add_argument('--threads', nargs='+', default=None,
                        help="Thread list; leading 0/'auto' halves from the maximum, "
                             "later 0/'accelerator' runs on the accelerator")
    parser.add_argument('--schedule-length', type=int, default=None,
                        help='Length of the auto-generated thread schedule')
    parser.add_argument('--variants', nargs='+', default=None,
                        help='Algorithm variants, e.g. sandia_dot burkhardt')
    parser.add_argument('--sort', nargs='+', default=None,
                        help='Sort policies: ascending none descending auto')
    parser.add_argument('--tolerance', type=float, default=None,
                        help='Max absolute error accepted by validation')
    parser.add_argument('--strict', action='store_true',
                        help='Abort on a validation mismatch')
    parser.add_argument('--zero-fill', choices=['calloc', 'memset'], default=None,
                        help='Zeroed-allocation strategy')
    parser.add_argument('--random', nargs=2, metavar=('N', 'DEG'), default=None,
                        help='Benchmark a random graph with N vertices and average degree DEG')
    parser.add_argument('--seed', type=int, default=42,
                        help='Random seed for --random (default: 42)')
    parser.add_argument('--db', type=str, default=None,
                        help='SQLite results database')
    parser.add_argument('--csv', type=str, default=None,
                        help='Write the run summary as CSV')
    parser.add_argument('--plot', type=str, default=None,
                        help='Write the thread-scaling plot (PNG)')
    parser.add_argument('--output-dir', type=str, default='output',
                        help='Directory for the log file (default: output)')
    parser.add_argument('--verbose', action='store_true',
                        help='Debug logging')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point. Parses command line arguments and runs one session.
    """
    args = build_parser().parse_args(argv)
    setup_logging(args.output_dir, logging.DEBUG if args.verbose else logging.INFO)

    logger.info("=" * 60)
    logger.info("GRAPH KERNEL BENCHMARK")
    logger.info(f"Start time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    logger.info("=" * 60)

    start = time.time()
    status = run(args)
    logger.info(f"Total wall time: {time.time() - start:.1f} seconds (exit status {status})")
    return status


if __name__ == '__main__':
    sys.exit(main())
