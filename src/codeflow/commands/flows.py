"""
codeflow.commands.flows - List flows and show project info.
"""

import argparse
import json

from codeflow.config import CodeflowConfig
from codeflow.flow.store import FlowStore
from codeflow.utilities.git import get_git_info


def run_list(args: argparse.Namespace, config: CodeflowConfig) -> int:
    """List stored flows, one per line (or as JSON)."""
    store = FlowStore(config)
    flows = store.list_flows()

    if args.json:
        print(json.dumps(flows, indent=2, ensure_ascii=False))
        return 0

    if not flows:
        print(f"No flows in {config.flows_dir}/")
        return 0

    width = max(len(f["filename"]) for f in flows)
    for entry in flows:
        marker = "+" if entry["hasAnalysis"] else " "
        name = entry.get("name") or ""
        print(f"{marker} {entry['filename']:<{width}}  {name}")
    return 0


def run_info(args: argparse.Namespace, config: CodeflowConfig) -> int:
    """Show project path, flows directory and git state."""
    store = FlowStore(config)
    git = get_git_info(config.project_path)
    info = {
        "projectPath": str(config.project_path),
        "flowsDirectory": config.flows_dir,
        "flowsExist": store.flows_path.is_dir(),
        "flowCount": store.count(),
        "formatVersion": config.format_version,
        "configFile": str(config.config_file) if config.config_file else None,
        "git": git.to_dict(),
    }

    if args.json:
        print(json.dumps(info, indent=2))
        return 0

    print(f"Project:  {info['projectPath']}")
    print(f"Config:   {info['configFile'] or '(defaults)'}")
    flows_state = f"{info['flowCount']} flows" if info["flowsExist"] else "missing"
    print(f"Flows:    {config.flows_dir}/ ({flows_state})")
    print(f"Format:   {config.format_version}")
    if git.is_repo:
        print(f"Git:      {git.branch} @ {git.last_commit or '(no commits)'}")
    else:
        print("Git:      not a repository")
    return 0
