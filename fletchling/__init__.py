"""Pokemon nest detection from spawn statistics, with Overpass and Koji clients."""

__version__ = "0.99.3"