"""
Excel and file parsers module.
"""

from parsers.master_excel_parser import (
    parse_mapping_excel,
    MappingParseResult,
    ParseError,
)

__all__ = [
    "parse_mapping_excel",
    "MappingParseResult",
    "ParseError",
]
