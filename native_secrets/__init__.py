"""native-secrets — shared ownership, sharing and audit of per-namespace secrets."""

__version__ = "0.1.0"
