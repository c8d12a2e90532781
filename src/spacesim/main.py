#!/usr/bin/env python3
"""
===============================================================================
SPACESIM - MAIN ENTRY POINT
===============================================================================
Builds a scenario from a YAML file, runs it for a given duration and writes
the telemetry, the event log and optional plots.

USAGE:
    python -m spacesim.main                                  # default scenario
    python -m spacesim.main --config my_scenario.yaml
    python -m spacesim.main --duration 5600 --dt 5 --plot output/plots
    python -m spacesim.main --mode cowell --log-level DEBUG

OUTPUTS:
    <output>              - telemetry CSV (one row per object per step)
    <output>.events.csv   - event log (maneuvers, staging, impacts, ...)
    <plot dir>/*.png      - trajectory, altitude and delta-V plots

DEPENDENCIES:
    numpy, scipy, pandas, matplotlib, pyyaml
===============================================================================
"""

import argparse
import logging
import os
import sys
import time

from spacesim import __version__
from spacesim.simulation.config import build_simulation, load_config

logger = logging.getLogger('spacesim.main')

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


def setup_logging(level: str = 'INFO', log_file: str = None) -> None:
    """Log to stdout and, optionally, to a file."""
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        handlers.append(logging.FileHandler(log_file, mode='w'))
    logging.basicConfig(level=getattr(logging, level.upper()), format=LOG_FORMAT,
                        handlers=handlers, force=True)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description='Orbital propagation engine: run a YAML scenario.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m spacesim.main                               Default scenario
  python -m spacesim.main --duration 86400 --dt 30      One day, 30 s steps
  python -m spacesim.main --plot output/plots           Write plots
        """
    )
    parser.add_argument('--config', type=str, default=None,
                        help='Path to scenario YAML (default: config/simulation_config.yaml)')
    parser.add_argument('--duration', type=float, default=None,
                        help='Simulated duration in seconds (overrides the scenario)')
    parser.add_argument('--dt', type=float, default=None,
                        help='Time step in seconds (overrides the scenario)')
    parser.add_argument('--mode', choices=['hybrid', 'two_body', 'cowell'], default=None,
                        help='Propagation mode (overrides the scenario)')
    parser.add_argument('--seed', type=int, default=None,
                        help='Seed for solver restarts (overrides the scenario)')
    parser.add_argument('--output', type=str, default='output/telemetry.csv',
                        help='Telemetry CSV path (default: output/telemetry.csv)')
    parser.add_argument('--plot', type=str, default=None, metavar='DIR',
                        help='Write telemetry plots into DIR')
    parser.add_argument('--log-level', type=str, default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    parser.add_argument('--log-file', type=str, default=None,
                        help='Also write the log to this file')
    parser.add_argument('--version', action='version', version=f'spacesim {__version__}')
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Parse arguments, run the scenario, write the outputs."""
    args = parse_args(argv)
    setup_logging(args.log_level, args.log_file)

    config = load_config(args.config)
    sim_cfg = config.setdefault('simulation', {})
    for key in ('dt', 'mode', 'seed'):
        value = getattr(args, key)
        if value is not None:
            sim_cfg[key] = value
    duration = args.duration if args.duration is not None else sim_cfg.get('duration', 3600.0)

    engine, handles = build_simulation(config)

    wall_start = time.time()
    try:
        telemetry = engine.run(duration)
    except KeyboardInterrupt:
        logger.warning("Simulation interrupted by user at t=%.1f s", engine.current_time)
        telemetry = engine.get_telemetry()

    output_dir = os.path.dirname(os.path.abspath(args.output))
    os.makedirs(output_dir, exist_ok=True)
    engine.save_telemetry(args.output)
    events_path = os.path.splitext(args.output)[0] + '.events.csv'
    engine.get_events().to_csv(events_path, index=False)
    logger.info("Events saved to %s  (%d events)", events_path, len(engine.events))

    if args.plot:
        from spacesim.visualization.trajectory_plots import generate_all_plots
        root = engine.object_of_reference
        radius = engine.get_object(root).config.radius if root is not None else None
        generate_all_plots(telemetry, args.plot, primary_radius=radius)

    engine.get_summary()
    logger.info("Finished in %.1f s wall time (%d objects)",
                time.time() - wall_start, len(handles))
    return 0


if __name__ == '__main__':
    sys.exit(main())
