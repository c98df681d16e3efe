"""Cross Image Generator - cached cross-compilation build environments.

This package provisions one container image per cross-compilation target,
reuses images restored from a content-checked cache, and orchestrates a
CI run across the whole target matrix.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
