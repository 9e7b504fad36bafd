#!/usr/bin/env python3
"""
Test runner for the wind farm GA
"""

import unittest
import sys
from pathlib import Path

# Add current directory to path for imports
sys.path.append(str(Path(__file__).parent))

TEST_DIR = Path(__file__).parent / "tests" / "test_windfarm_ga"


def run_all_tests():
    """Run all test modules"""
    loader = unittest.TestLoader()
    suite = loader.discover(str(TEST_DIR), pattern="test_*.py")

    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)

    return result.wasSuccessful()


def run_integration_test():
    """Run a small end-to-end optimization"""
    print("\n" + "=" * 50)
    print("INTEGRATION TEST")
    print("=" * 50)

    try:
        import numpy as np
        from windfarm_ga import GAConfig, GridCell, WindScenario, run_optimization

        grid = [GridCell(id=i + 1, x=(i % 5) * 10.0, y=(i // 5) * 10.0) for i in range(25)]
        wind = WindScenario.from_records([(10.0, 10.0, 100.0)])
        config = GAConfig(
            n_turbines=3, rotor_radius=30.0, hub_height=80.0,
            max_iterations=5, initial_population=40
        )

        print("Running optimization...")
        history = run_optimization(grid, wind, config, rng=np.random.default_rng(7))

        best = history.best_by_energy()
        print(f"Generations: {len(history)}")
        print(f"Best energy: {best.energy:.2f}")
        print(f"Best efficiency: {best.efficiency:.2f}%")

        success = len(history) == 5 and best.n_turbines == 3

        if success:
            print("✓ Integration test PASSED")
        else:
            print("✗ Integration test FAILED")

        return success

    except Exception as e:
        print(f"✗ Integration test FAILED: {e}")
        import traceback
        traceback.print_exc()
        return False


if __name__ == "__main__":
    print("Running Wind Farm GA Tests")
    print("=" * 60)

    # Run unit tests
    print("Running unit tests...")
    unit_success = run_all_tests()

    # Run integration test
    integration_success = run_integration_test()

    # Summary
    print("\n" + "=" * 60)
    print("TEST SUMMARY")
    print("=" * 60)
    print(f"Unit tests: {'PASSED' if unit_success else 'FAILED'}")
    print(f"Integration test: {'PASSED' if integration_success else 'FAILED'}")

    overall_success = unit_success and integration_success
    print(f"Overall: {'PASSED' if overall_success else 'FAILED'}")

    sys.exit(0 if overall_success else 1)
