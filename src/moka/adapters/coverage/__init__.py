"""Coverage report adapters."""

from moka.adapters.coverage.jacoco import (
    JaCoCoAdapter,
    decode_jacoco_xml,
    detect_default_coverage_path,
    load_coverage_tree,
)

__all__ = [
    "JaCoCoAdapter",
    "decode_jacoco_xml",
    "detect_default_coverage_path",
    "load_coverage_tree",
]
