"""
CLI for generating Freqtrade strategies from UI builder documents.

Reads a JSON document from a file (or '-' for stdin) and prints the
generated strategy code, the normalized document, or validation findings.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from src.codegen.assembler import (
    DEFAULT_CLASS_NAME,
    name_to_class_name,
    preview_strategy_code,
    validate_config_size,
)
from src.codegen.errors import CodegenError
from src.codegen.ir import parse_ui_builder_config
from src.codegen.normalize import normalize_config
from src.codegen.validator import validate_config

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)


def _load_document(path: str) -> dict[str, Any]:
    text = sys.stdin.read() if path == "-" else Path(path).read_text()
    document = json.loads(text)
    if not isinstance(document, dict):
        raise ValueError("config must be a JSON object")
    return document


def cmd_preview(args) -> int:
    """Generate strategy code."""
    class_name = args.class_name
    if class_name is None:
        class_name = name_to_class_name(args.name) if args.name else DEFAULT_CLASS_NAME

    generated = preview_strategy_code(_load_document(args.config), class_name)
    for warning in generated.warnings:
        logger.warning(f"⚠️  {warning}")

    if args.output:
        Path(args.output).write_text(generated.code)
        print(f"✅ Wrote {generated.class_name} to {args.output}")
    else:
        print(generated.code, end="")
    return 0


def cmd_normalize(args) -> int:
    """Print the document in its canonical per-direction shape."""
    document = _load_document(args.config)
    validate_config_size(document)
    config = normalize_config(parse_ui_builder_config(document))
    print(json.dumps(config.model_dump(mode="json", by_alias=True, exclude_none=True), indent=2))
    return 0


def cmd_validate(args) -> int:
    """Check a document for referential integrity and completeness."""
    document = _load_document(args.config)
    validate_config_size(document)
    result = validate_config(normalize_config(parse_ui_builder_config(document)))

    for issue in result.errors:
        print(f"❌ {issue.path}: {issue.message}")
    for issue in result.warnings:
        print(f"⚠️  {issue.path}: {issue.message}")

    if not result.is_valid:
        return 1
    print("✅ Valid" if result.is_complete else "✅ Valid (incomplete)")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(description="Generate Freqtrade strategies from UI builder configs")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Preview command
    preview_parser = subparsers.add_parser("preview", help="Generate strategy code")
    preview_parser.add_argument("config", help="Path to the JSON config ('-' for stdin)")
    preview_parser.add_argument("--class-name", help="Strategy class name (PascalCase)")
    preview_parser.add_argument("--name", help="Strategy display name, converted to a class name")
    preview_parser.add_argument("--output", "-o", help="Write code to this file instead of stdout")

    # Normalize command
    normalize_parser = subparsers.add_parser("normalize", help="Print the normalized config")
    normalize_parser.add_argument("config", help="Path to the JSON config ('-' for stdin)")

    # Validate command
    validate_parser = subparsers.add_parser("validate", help="Validate a config")
    validate_parser.add_argument("config", help="Path to the JSON config ('-' for stdin)")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    commands = {
        "preview": cmd_preview,
        "normalize": cmd_normalize,
        "validate": cmd_validate,
    }

    try:
        return commands[args.command](args)
    except ValidationError as e:
        logger.error(f"Invalid config: {e}")
    except CodegenError as e:
        logger.error(f"Code generation failed: {e}")
    except (OSError, ValueError) as e:
        logger.error(f"Could not read config: {e}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
