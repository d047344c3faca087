"""
codeflow.cli - Command-line interface.

Main entry point for the codeflow CLI tool.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from codeflow import __version__
from codeflow.commands import flows, validate
from codeflow.config import CodeflowConfig, get_config


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="codeflow",
        description="Flow document validation and MCP editing server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  codeflow validate                 # Validate every flow in flows/
  codeflow validate checkout.cf     # Validate one flow
  codeflow list                     # List stored flows
  codeflow info                     # Project, config and git state
  codeflow mcp serve                # Run the MCP server on stdio

Configuration:
  .codeflow.toml in the project (or a parent) sets [flows] and [scan]
  options; CODEFLOW_PROJECT_PATH and CODEFLOW_FLOWS_DIR override them.

For detailed command help: codeflow <command> --help
        """,
    )

    # Global options
    parser.add_argument(
        "--version",
        action="version",
        version=f"codeflow {__version__}",
    )
    parser.add_argument(
        "--project",
        type=Path,
        help="Project directory (default: current directory)",
        metavar="PATH",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Verbose output (debug logging on stderr)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # validate command
    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate flow documents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Arguments may be paths to .cf files or names of flows in the flows
directory ("checkout" and "checkout.cf" are equivalent). With no
arguments every stored flow is validated.
""",
    )
    validate_parser.add_argument(
        "files",
        nargs="*",
        help="Flow files or stored flow names",
        metavar="FILE",
    )
    validate_parser.add_argument(
        "-j",
        "--json",
        action="store_true",
        help="Output results as JSON",
    )

    # list command
    list_parser = subparsers.add_parser(
        "list",
        help="List stored flows (+ marks flows with an analysis file)",
    )
    list_parser.add_argument(
        "-j",
        "--json",
        action="store_true",
        help="Output as JSON",
    )

    # info command
    info_parser = subparsers.add_parser(
        "info",
        help="Show project, configuration and git state",
    )
    info_parser.add_argument(
        "-j",
        "--json",
        action="store_true",
        help="Output as JSON",
    )

    # version command
    subparsers.add_parser(
        "version",
        help="Show version",
    )

    # mcp command
    mcp_parser = subparsers.add_parser(
        "mcp",
        help="MCP server commands (requires codeflow[mcp])",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Claude Desktop / Claude Code configuration:
  {
    "mcpServers": {
      "codeflow": {
        "command": "codeflow",
        "args": ["mcp", "serve"],
        "env": {"CODEFLOW_PROJECT_PATH": "/path/to/project"}
      }
    }
  }
""",
    )
    mcp_subparsers = mcp_parser.add_subparsers(dest="mcp_action")

    # mcp serve
    mcp_serve = mcp_subparsers.add_parser(
        "serve",
        help="Start the MCP server",
    )
    mcp_serve.add_argument(
        "--transport",
        choices=["stdio", "sse", "streamable-http"],
        default="stdio",
        help="Transport type (default: stdio)",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "version":
            return version_command(args)

        config = get_config(start_path=args.project)

        if args.command == "validate":
            return validate.run(args, config)
        elif args.command == "list":
            return flows.run_list(args, config)
        elif args.command == "info":
            return flows.run_info(args, config)
        elif args.command == "mcp":
            return mcp_command(args, config)
        else:
            parser.print_help()
            return 1

    except KeyboardInterrupt:
        print("\nOperation cancelled.", file=sys.stderr)
        return 130
    except Exception as e:
        if args.verbose:
            raise
        print(f"Error: {e}", file=sys.stderr)
        return 1


def version_command(args: argparse.Namespace) -> int:
    """Handle version command."""
    print(f"codeflow {__version__}")
    return 0


def mcp_command(args: argparse.Namespace, config: CodeflowConfig) -> int:
    """Handle MCP server commands.

    Status lines go to stderr; stdout belongs to the stdio transport.
    """
    from codeflow.mcp import MCP_AVAILABLE, run_server

    if not MCP_AVAILABLE:
        print("Error: MCP dependencies not installed.", file=sys.stderr)
        print("Install with: pip install codeflow[mcp]", file=sys.stderr)
        return 1

    if args.mcp_action == "serve":
        print("Starting codeflow MCP server...", file=sys.stderr)
        print(f"Project: {config.project_path}", file=sys.stderr)
        print(f"Flows directory: {config.flows_path}", file=sys.stderr)
        print(f"Transport: {args.transport}", file=sys.stderr)

        try:
            run_server(config=config, transport=args.transport)
        except KeyboardInterrupt:
            print("\nServer stopped.", file=sys.stderr)
        return 0
    else:
        print("Usage: codeflow mcp serve", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
