"""Image Gallery - shareable, time-limited galleries of externally hosted images."""

__version__ = "0.3.0"
