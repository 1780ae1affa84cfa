#!/usr/bin/env python3
"""
main.py - quick-start entry point.

Drop images into ``images/`` and run:

    python main.py batch

Or use the full CLI:

    python -m dither_lab.cli dither --help
    python -m dither_lab.cli dither my_photo.jpg -a atkinson -c 2 --mono
    python -m dither_lab.cli palette my_photo.jpg -c 8
"""

from dither_lab.cli import app

if __name__ == "__main__":
    app()
