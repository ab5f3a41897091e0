"""nestkit -- compose CLI tools out of separately built nested tool binaries."""

__version__ = "0.1.0"
