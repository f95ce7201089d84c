from . import schema
from . import grammar
from . import load

from .grammar import parse_rule
from .load import Buildfile, load_buildfile, load_buildfile_text

__all__ = [
    "schema",
    "grammar",
    "load",
    "parse_rule",
    "Buildfile",
    "load_buildfile",
    "load_buildfile_text",
]
