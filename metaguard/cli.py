#!/usr/bin/env python3
"""
Metaguard CLI

Usage:
    metaguard [--format json|yaml|table|text] [--config FILE] <command> [subcommand] [options]

Commands:
    config      show | get PATH | validate | schema
    derive      metadata | edition | token-record   derived account addresses
    inspect     classify a raw account record (hex)
    decode      decode raw instruction data (hex)
    rules       validate [FILE]                     check a rule set document

Copyright (c) 2026 Metaguard. All rights reserved.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import sys
from enum import Enum
from typing import Any, List, Optional

import yaml

from metaguard import __version__
from metaguard.config import get_config_manager
from metaguard.errors import MetadataError
from metaguard.instruction import LegacyInstruction, decode_instruction
from metaguard.observability import EngineLayer, configure_logging, get_logger, get_tracer
from metaguard.payload import AuthorizationData, Payload
from metaguard.pubkey import Pubkey, find_program_address
from metaguard.rule_engine import RuleSetError, load_rule_sets
from metaguard.state import (
    DISCRIMINATOR_INDEX,
    Key,
    MasterEdition,
    Metadata,
    TokenRecord,
    TokenRecordPrefix,
    edition_seeds,
    metadata_seeds,
    token_record_seeds,
)


logger = get_logger("cli", EngineLayer.CLI)


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TABLE = "table"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    elif fmt == OutputFormat.TABLE:
        return _format_table(data)
    return str(data)


def _format_table(data: Any) -> str:
    if isinstance(data, dict):
        width = max((len(str(k)) for k in data), default=0)
        return "\n".join(f"{str(k).ljust(width)} | {v}" for k, v in data.items())
    return str(data)


def to_jsonable(value: Any) -> Any:
    """Plain JSON view of records and decoded instructions."""
    if isinstance(value, Pubkey):
        return str(value)
    if isinstance(value, Enum):
        return value.name
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    if isinstance(value, AuthorizationData):
        return value.payload.to_json()
    if isinstance(value, Payload):
        return value.to_json()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def parse_hex(text: str) -> bytes:
    text = text.strip()
    if text.startswith(("0x", "0X")):
        text = text[2:]
    try:
        return bytes.fromhex(text)
    except ValueError as e:
        raise CLIError(f"Invalid hex input: {e}") from e


def parse_pubkey(text: str) -> Pubkey:
    try:
        return Pubkey.from_string(text)
    except ValueError as e:
        raise CLIError(f"Invalid address {text!r}: {e}") from e


class MetaguardCLI:
    """Main CLI application."""

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="metaguard",
            description="Programmable asset metadata engine",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"metaguard {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=[f.value for f in OutputFormat],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument("--config", "-c", help="Configuration file (YAML)")
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress error output",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_config_commands()
        self._register_derive_commands()
        self._register_record_commands()
        self._register_rules_commands()

    def _register_config_commands(self) -> None:
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        config_sub.add_parser("show", help="Show effective configuration")
        get = config_sub.add_parser("get", help="Get one value")
        get.add_argument("path", help="Dotted path, e.g. engine.max_accounts")
        config_sub.add_parser("validate", help="Validate effective configuration")
        config_sub.add_parser("schema", help="Show configuration schema")

    def _register_derive_commands(self) -> None:
        derive = self.subparsers.add_parser("derive", help="Derive record addresses")
        derive_sub = derive.add_subparsers(dest="subcommand")

        for name, help_text in (
            ("metadata", "Asset record address for a mint"),
            ("edition", "Edition address for a mint"),
            ("token-record", "Token record address for a mint and token account"),
        ):
            cmd = derive_sub.add_parser(name, help=help_text)
            cmd.add_argument("--mint", "-m", required=True, help="Mint address")
            cmd.add_argument("--program-id", "-p", help="Owning program (default from config)")
            if name == "token-record":
                cmd.add_argument("--token", "-t", required=True, help="Token account address")

    def _register_record_commands(self) -> None:
        inspect = self.subparsers.add_parser("inspect", help="Classify a raw account record")
        inspect.add_argument("data", help="Account data as hex")

        decode = self.subparsers.add_parser("decode", help="Decode raw instruction data")
        decode.add_argument("data", help="Instruction data as hex")

    def _register_rules_commands(self) -> None:
        rules = self.subparsers.add_parser("rules", help="Local rule sets")
        rules_sub = rules.add_subparsers(dest="subcommand")

        validate = rules_sub.add_parser("validate", help="Validate a rule set file")
        validate.add_argument("file", nargs="?", help="Rule set YAML (default: engine.rule_sets_path)")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        try:
            mgr = get_config_manager()
            if parsed.config:
                mgr.load_from_file(parsed.config)
            else:
                mgr.load_defaults()
            obs = mgr.config.observability
            configure_logging(obs.log_level.get(), obs.log_format.get())
            get_tracer().enabled = obs.enable_tracing.get()

            result = self._dispatch(parsed)
            if result is not None:
                print(format_output(result, OutputFormat(parsed.format)))
            return 0

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except MetadataError as e:
            if not parsed.quiet:
                print(format_output({"error": e.to_dict()}), file=sys.stderr)
            return 2

        except Exception as e:
            logger.error("Command failed", exc_info=True, command=parsed.command)
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return 1

    def _dispatch(self, args: argparse.Namespace) -> Any:
        cmd = args.command.replace("-", "_")
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd.replace('-', '_')}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {args.command} {subcmd or ''}".strip())

        return handler(args)

    # Config handlers
    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        return get_config_manager().config.to_dict()

    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        return {"path": args.path, "value": get_config_manager().get(args.path)}

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        errors = get_config_manager().validate()
        return {"valid": len(errors) == 0, "errors": errors}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        return get_config_manager().export_schema()

    # Derive handlers
    def _program_id(self, args: argparse.Namespace) -> Pubkey:
        if args.program_id:
            return parse_pubkey(args.program_id)
        return get_config_manager().config.program_id

    def _derived(self, seeds: List[bytes], program_id: Pubkey) -> Any:
        address, bump = find_program_address(seeds, program_id)
        return {"address": str(address), "bump": bump, "program_id": str(program_id)}

    def _handle_derive_metadata(self, args: argparse.Namespace) -> Any:
        program_id = self._program_id(args)
        return self._derived(metadata_seeds(program_id, parse_pubkey(args.mint)), program_id)

    def _handle_derive_edition(self, args: argparse.Namespace) -> Any:
        program_id = self._program_id(args)
        return self._derived(edition_seeds(program_id, parse_pubkey(args.mint)), program_id)

    def _handle_derive_token_record(self, args: argparse.Namespace) -> Any:
        program_id = self._program_id(args)
        seeds = token_record_seeds(program_id, parse_pubkey(args.mint), parse_pubkey(args.token))
        return self._derived(seeds, program_id)

    # Record handlers
    def _handle_inspect(self, args: argparse.Namespace) -> Any:
        data = parse_hex(args.data)
        if not data:
            return {"kind": Key.Uninitialized.name, "empty": True}
        try:
            key = Key(data[DISCRIMINATOR_INDEX])
        except ValueError:
            raise CLIError(f"Unknown record discriminator {data[DISCRIMINATOR_INDEX]}") from None

        if key == Key.MetadataV1:
            metadata = Metadata.from_bytes(data)
            return {
                "kind": key.name,
                "programmable": metadata.is_programmable(),
                "record": to_jsonable(metadata),
            }
        if key == Key.TokenRecord:
            prefix = TokenRecordPrefix.from_bytes(data)
            return {
                "kind": key.name,
                "locked": prefix.is_locked(),
                "record": to_jsonable(TokenRecord.from_bytes(data)),
            }
        if key == Key.MasterEditionV2:
            return {"kind": key.name, "record": to_jsonable(MasterEdition.from_bytes(data))}
        return {"kind": key.name}

    def _handle_decode(self, args: argparse.Namespace) -> Any:
        instruction = decode_instruction(parse_hex(args.data))
        if isinstance(instruction, LegacyInstruction):
            return {
                "instruction": instruction.name,
                "legacy": True,
                "tag": int(instruction.kind),
                "data": instruction.data.hex(),
            }
        return {
            "instruction": instruction.name,
            "legacy": False,
            "tag": instruction.TAG,
            "args": to_jsonable(instruction),
        }

    # Rules handlers
    def _handle_rules_validate(self, args: argparse.Namespace) -> Any:
        path = args.file or get_config_manager().config.engine.rule_sets_path.get()
        if not path:
            raise CLIError("No rule set file given and engine.rule_sets_path is not set")
        try:
            rule_sets = load_rule_sets(path)
        except RuleSetError as e:
            return {"valid": False, "errors": e.errors}
        return {
            "valid": True,
            "rule_sets": [
                {"name": rs.name, "address": str(rs.address), "operations": sorted(rs.operations)}
                for rs in rule_sets
            ],
        }


def main() -> int:
    """CLI entry point."""
    cli = MetaguardCLI()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
