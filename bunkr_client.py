#!/usr/bin/env python3
from bunkr_transfer.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
