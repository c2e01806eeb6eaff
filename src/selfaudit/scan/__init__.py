"""Static analysis of the plugin source tree.

- Tokenizer: PHP source to an indexable token array
- Inventory: declared types, methods, routes, admin pages and CLI commands
- Linkage: call sites of every cataloged method
"""

from selfaudit.scan.inventory import Inventory, build_inventory, run_inventory, scan_types
from selfaudit.scan.linkage import LinkageAnalyzer, run_linkage
from selfaudit.scan.models import (
    CallReference,
    CallSiteKind,
    LinkageEntry,
    MethodSignature,
    RouteDeclaration,
    TypeDeclaration,
)
from selfaudit.scan.tokenizer import Token, TokenKind, tokenize

__all__ = [
    "CallReference",
    "CallSiteKind",
    "Inventory",
    "LinkageAnalyzer",
    "LinkageEntry",
    "MethodSignature",
    "RouteDeclaration",
    "Token",
    "TokenKind",
    "TypeDeclaration",
    "build_inventory",
    "run_inventory",
    "run_linkage",
    "scan_types",
    "tokenize",
]
