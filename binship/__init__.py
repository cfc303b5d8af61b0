"""binship - build, ship and watch a compiled service on a remote host."""

__version__ = "1.0.0"
