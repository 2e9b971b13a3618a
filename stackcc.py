#!/usr/bin/env python3
"""stackcc - top-level CLI wrapper

Usage examples:
  ./stackcc.py "4 + 2 * 3"                  # assembly on stdout
  ./stackcc.py "fn main() { return 42; }" -o answer
  ./stackcc.py -f fib.sc -o fib.s
"""
from __future__ import annotations

from stackcc.compiler import main


if __name__ == "__main__":
    raise SystemExit(main())
