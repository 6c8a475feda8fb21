#!/usr/bin/env python3
"""
Test runner script for the PodPlanner backend

Usage:
    python run_tests.py                       # full suite with coverage
    python run_tests.py tests/test_grid.py    # one module, no coverage
"""

import sys
import os
import subprocess

COVERED_MODULES = ['allocations', 'database', 'engine', 'errors', 'grid', 'integrity', 'models', 'routes']


def backend_dir():
    return os.path.dirname(os.path.abspath(__file__))


def run_tests():
    """Run all backend tests with coverage"""
    print("Running PodPlanner Backend Tests")
    print("=" * 50)

    os.chdir(backend_dir())

    cmd = [sys.executable, "-m", "pytest"]
    cmd += [f"--cov={module}" for module in COVERED_MODULES]
    cmd += [
        "--cov-report=html",
        "--cov-report=term-missing",
        "tests/",
        "-v"
    ]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except OSError as e:
        print(f"Error running tests: {e}")
        return False

    print(result.stdout)
    if result.stderr:
        print("STDERR:", result.stderr)

    print("\n" + "=" * 50)
    if result.returncode != 0:
        print("Some tests failed!")
        return False

    print("All tests passed!")
    print("Coverage report generated in htmlcov/index.html")
    return True


def run_specific_test(test_path):
    """Run a single test module or node id"""
    os.chdir(backend_dir())

    result = subprocess.run([sys.executable, "-m", "pytest", test_path, "-v"])
    return result.returncode == 0


if __name__ == "__main__":
    if len(sys.argv) > 1:
        success = run_specific_test(sys.argv[1])
    else:
        success = run_tests()

    sys.exit(0 if success else 1)
