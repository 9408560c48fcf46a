"""Pipeline node implementations."""

from .extract import extract_node
from .calltrace import calltrace_enrich_node, calltrace_explain_node
from .draft import draft_node
from .verify import verify_node
from .output import output_node

__all__ = [
    "extract_node",
    "calltrace_enrich_node",
    "calltrace_explain_node",
    "draft_node",
    "verify_node",
    "output_node",
]
