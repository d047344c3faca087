"""
codeflow.commands.validate - Validate flow documents command.

Checks stored flows, or .cf files given by path, against the flow format.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Tuple

from codeflow.config import CodeflowConfig
from codeflow.flow.store import FlowStore, parse_json
from codeflow.flow.validation import ValidationResult, validate_flow


def run(args: argparse.Namespace, config: CodeflowConfig) -> int:
    """
    Run the validate command.

    Args:
        args: Parsed command line arguments
        config: Resolved project configuration

    Returns:
        Exit code (0 when every flow is valid, 1 otherwise)
    """
    store = FlowStore(config)
    targets = args.files or [p.name for p in store.iter_flow_files()]
    if not targets:
        print(f"No flows found in {config.flows_dir}/", file=sys.stderr)
        return 0

    results: List[Tuple[str, ValidationResult]] = [
        (target, check_target(store, target)) for target in targets
    ]

    if args.json:
        report: Dict[str, Any] = {name: result.to_dict() for name, result in results}
        print(json.dumps(report, indent=2))
    else:
        for name, result in results:
            if result.valid:
                print(f"✓ {name}")
            else:
                print(f"✗ {name}")
                for error in result.errors:
                    print(f"  {error}")

    invalid = [name for name, result in results if not result.valid]
    if not args.json:
        print("─" * 60)
        print(f"{len(results) - len(invalid)}/{len(results)} flows valid")
    return 1 if invalid else 0


def check_target(store: FlowStore, target: str) -> ValidationResult:
    """Validate one flow given as a file path or a stored flow name.

    Unreadable or unparsable input is reported as a ``root`` error rather
    than raised, so one bad file does not stop the run.
    """
    path = Path(target)
    try:
        if path.is_file():
            data = parse_json(path.read_text(encoding="utf-8"), str(path))
        else:
            data = store.load_document(target)
    except (ValueError, KeyError, OSError) as e:
        result = ValidationResult()
        result.add("root", str(e))
        return result
    return validate_flow(data, expected_version=store.config.format_version)
