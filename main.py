"""
Entry point for running from a source checkout.

Usage:
    python main.py <command> [options]

Example:
    python main.py describe "part.stl" --max-degree 16 --output part.json
    python main.py batch ./models --output ./descriptors --parallel
    python main.py cluster "part.ply" -k 4 --config project.json
"""

import sys

# Windows consoles default to a legacy code page
if sys.stdout.encoding and sys.stdout.encoding.lower() not in ('utf-8', 'utf8'):
    sys.stdout.reconfigure(encoding='utf-8', errors='replace')
if sys.stderr.encoding and sys.stderr.encoding.lower() not in ('utf-8', 'utf8'):
    sys.stderr.reconfigure(encoding='utf-8', errors='replace')

from mesh_analysis.cli import main

if __name__ == "__main__":
    sys.exit(main())
