"""
run_engine.py - Single entry point for the volume engine

Equivalent to the installed `volbot` console script; works from a source
checkout without installing the package.
"""

import sys

# Add src to path for imports
sys.path.insert(0, 'src')


def main() -> int:
    from volbot.engines.volume_engine import cli
    return cli()


if __name__ == "__main__":
    raise SystemExit(main())
