"""
Package entry point.

Allows running the application via:

    python -m examcal

This simply forwards execution to examcal.cli.main().
"""

from examcal.cli import main

if __name__ == "__main__":
    main()
