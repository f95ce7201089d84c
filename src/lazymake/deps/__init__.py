"""
Compiler dependency artifacts: parsing, on-disk records, postprocessing.

Exports the public API:
- DependencyRecord, parse_dependency_text, parse_dependency_file
- DependencyStore
- normalize_raw_artifact
"""
from .parse import DependencyRecord, parse_dependency_text, parse_dependency_file
from .store import DependencyStore
from .postprocess import normalize_raw_artifact
