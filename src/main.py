#!/usr/bin/env python3
"""
===============================================================================
ORBITDYN - MAIN ENTRY POINT
===============================================================================
Runs one of the demonstration scenarios from a YAML configuration file.

USAGE:
    python main.py --scenario attitude                 # switching scenario
    python main.py --scenario od                       # orbit determination
    python main.py --scenario od --config my_od.yaml   # custom set-up
    python main.py --verbose                           # DEBUG logging

OUTPUTS:
    output/attitude_telemetry.csv   - attitude scenario telemetry
    output/od_history.csv           - Kalman estimation history

DEPENDENCIES:
    numpy, scipy, pandas, pyyaml
===============================================================================
"""

import argparse
import logging
import sys
from pathlib import Path

# ---------------------------------------------------------------------------
# Path setup: ensure all project modules are importable
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from core.config import AttitudeScenarioConfig, OrbitDeterminationConfig, load_config
from core.errors import OrbitDynError
from simulation.scenarios import AttitudeScenario, OrbitDeterminationScenario

logger = logging.getLogger('ORBITDYN_MAIN')

DEFAULT_CONFIGS = {
    'attitude': PROJECT_ROOT.parent / 'config' / 'attitude_scenario.yaml',
    'od': PROJECT_ROOT.parent / 'config' / 'od_scenario.yaml',
}


def run_attitude(config_path: Path, output_dir: Path) -> dict:
    config = AttitudeScenarioConfig.from_dict(load_config(config_path))
    scenario = AttitudeScenario(config)
    scenario.run()
    scenario.save_telemetry(output_dir / 'attitude_telemetry.csv')
    return scenario.get_summary()


def run_orbit_determination(config_path: Path, output_dir: Path) -> dict:
    config = OrbitDeterminationConfig.from_dict(load_config(config_path))
    scenario = OrbitDeterminationScenario(config)
    scenario.run()
    scenario.history.to_csv(output_dir / 'od_history.csv')
    return scenario.get_summary()


def main(argv=None) -> int:
    """
    Main entry point. Parses command line arguments and runs the selected
    scenario.
    """
    parser = argparse.ArgumentParser(
        description='ORBITDYN: attitude sequencing and Kalman orbit determination',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('--scenario', choices=('attitude', 'od'), default='attitude',
                        help='Scenario to run (default: attitude)')
    parser.add_argument('--config', type=str, default=None,
                        help='Path to scenario config YAML')
    parser.add_argument('--output', type=str, default='output',
                        help='Output directory (default: output)')
    parser.add_argument('--verbose', action='store_true',
                        help='DEBUG logging')
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    output_dir = Path(args.output)
    output_dir.mkdir(parents=True, exist_ok=True)
    config_path = Path(args.config) if args.config else DEFAULT_CONFIGS[args.scenario]

    logger.info("=" * 60)
    logger.info("ORBITDYN scenario: %s", args.scenario)
    logger.info("=" * 60)
    try:
        if args.scenario == 'attitude':
            run_attitude(config_path, output_dir)
        else:
            run_orbit_determination(config_path, output_dir)
    except OrbitDynError as exc:
        logger.error("Scenario failed: %s", exc)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
