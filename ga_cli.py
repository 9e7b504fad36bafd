#!/usr/bin/env python3
"""
Wind Farm GA CLI - Minimal entry point.

This is the command-line interface for the wind farm layout optimizer.
All configuration is specified in YAML files.

Usage:
    python3 ga_cli.py run_config.yaml
    python3 ga_cli.py --config run_config.yaml
    python3 ga_cli.py run_config.yaml --verbose
    python3 ga_cli.py --help

Examples:
    # Optimize 3 turbines on the example 5x5 grid
    python3 ga_cli.py examples/run_5x5.yaml

The run file names a grid CSV (id,x,y[,roughness,elevation]), a wind CSV
(direction,speed,probability), the GA parameters and an output directory.
"""

import sys
from pathlib import Path

# Add project root to path if needed
project_root = Path(__file__).parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))


def main(argv=None):
    """Main entry point for the wind farm GA CLI."""
    argv = list(sys.argv if argv is None else argv)

    verbose = False
    for flag in ('-v', '--verbose'):
        if flag in argv[1:]:
            argv.remove(flag)
            verbose = True

    # Handle help
    if len(argv) < 2 or argv[1] in ['-h', '--help', 'help']:
        print(__doc__)
        sys.exit(0 if len(argv) > 1 else 1)

    # Parse config path
    config_path = argv[1]

    if config_path.startswith('--config='):
        config_path = config_path.split('=', 1)[1]
    elif config_path == '--config':
        if len(argv) < 3:
            print("Error: --config requires an argument")
            print(__doc__)
            sys.exit(1)
        config_path = argv[2]

    # Import and run
    try:
        from windfarm_ga.cli import run_from_config
        run_from_config(config_path, verbose=verbose)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(1)
    except Exception as e:
        print(f"\nError: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
