#!/usr/bin/env python3
"""meetwatch meeting alert daemon."""

from __future__ import annotations

from meetwatch.daemon import run

if __name__ == "__main__":
    run()
