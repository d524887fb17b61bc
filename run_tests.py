#!/usr/bin/env python3
"""
Test runner for the shortlink project.

Extra arguments are passed to pytest, e.g.:

    python run_tests.py -k allocator
"""

import os
import subprocess
import sys


def run_tests(extra_args=None):
    """Run pytest over tests/ from the project root and return its exit code"""
    print("Running shortlink tests")
    print("=" * 40)

    os.chdir(os.path.dirname(os.path.abspath(__file__)))

    command = [sys.executable, "-m", "pytest", "tests/", "-v", "--tb=short"]
    command.extend(extra_args or [])

    try:
        result = subprocess.run(command)
    except FileNotFoundError:
        print("pytest not found. Install with: pip install -e .[test]")
        return 1

    if result.returncode == 0:
        print("\nAll tests passed!")
    else:
        print(f"\nTests failed with exit code {result.returncode}")
    return result.returncode


if __name__ == "__main__":
    sys.exit(run_tests(sys.argv[1:]))
