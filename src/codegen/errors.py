"""Errors raised by the strategy code generator."""

from __future__ import annotations


class CodegenError(Exception):
    """Raised when a configuration cannot produce valid strategy code.

    Generation errors are deterministic: the same document always fails the
    same way, so callers surface them to the author instead of retrying.
    """

    def __init__(self, message: str, node_id: str | None = None):
        self.message = message
        self.node_id = node_id or None
        if self.node_id:
            message = f"{message} (node '{self.node_id}')"
        super().__init__(message)


class SchemaError(CodegenError):
    """Tree shape violation: unknown kind, wrong arity, unsupported operator."""


class SemanticError(CodegenError):
    """Well-formed tree that asks for something that does not exist."""


class ConfigLimitError(CodegenError):
    """Document exceeds the accepted size or nesting depth."""
