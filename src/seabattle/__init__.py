"""Human-versus-computer naval battle engine."""

__version__ = "0.1.0"
