#!/usr/bin/env python3
"""Timeline CLI launcher script.

This is a convenience script that can be run directly from the scripts directory.
The actual implementation is in cgm_timeline.timeline_cli for proper package integration.

Usage:
    python scripts/timeline_cli.py <command> [options]

Or install the package and use:
    timeline-cli <command> [options]
    python -m cgm_timeline.timeline_cli <command> [options]
"""

from cgm_timeline.timeline_cli import main

if __name__ == "__main__":
    main()
