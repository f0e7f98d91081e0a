"""
RDL schema synthesis.

Builds report definitions (RDL 2016 XML) from the perceived structure of a
source document and the expressions compiled from its field codes.

Key Components:
- namespaces: Namespace constants, qualified names and length formatting
- builder: Empty document skeleton and anchored mutations
- validation: Structural checks run before any document is serialized
- styles: Font family normalization and table cell alignment
- synthesizer: Structure + logic -> validated report definition
"""

from rdlgen.schema.builder import create_empty_document
from rdlgen.schema.synthesizer import (
    ReportSynthesizer,
    SynthesisResult,
    build_report,
    synthesize_document,
    synthesize_per_page,
)
from rdlgen.schema.validation import ensure_valid, to_xml_bytes, validate_document

__all__ = [
    "ReportSynthesizer",
    "SynthesisResult",
    "build_report",
    "create_empty_document",
    "ensure_valid",
    "synthesize_document",
    "synthesize_per_page",
    "to_xml_bytes",
    "validate_document",
]
