"""jout - run ls and ps, get JSON."""

__version__ = "0.1.0"
