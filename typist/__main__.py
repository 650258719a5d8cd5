#!/usr/bin/env python3
"""
Typist main entry point for running as a module: python3 -m typist
"""

import sys
from typist.cli import main

if __name__ == '__main__':
    sys.exit(main())
