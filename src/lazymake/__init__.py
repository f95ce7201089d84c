"""
lazymake: an incremental build engine that reads compiler dependency
records lazily, only for the targets a build actually visits.
"""

__version__ = "0.1.0"
