"""Strategy Codegen Service."""
