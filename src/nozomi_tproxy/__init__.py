"""nozomi-tproxy — route one process's traffic through a local proxy."""

__version__ = "0.1.0"
