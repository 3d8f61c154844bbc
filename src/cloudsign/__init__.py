"""Cloud and local signing engines with KMS key import support."""

__version__ = "0.1.0"
