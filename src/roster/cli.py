"""CLI entry point for Roster."""

import argparse
import json
import logging
import os
import signal
import sys
import threading
from typing import List

import yaml
from jinja2 import Environment, PackageLoader

from .client import RegistryClient
from .config import (
    RosterConfig,
    apply_env_overrides,
    config_to_yaml,
    load_config,
    merge_cli_args,
)
from .registry import LockCoordinator, PublicInstanceView, RegistryStore, now_ms, reap
from .snapshot import InstanceIdentity, SnapshotBuilder


def _get_template_env() -> Environment:
    return Environment(
        loader=PackageLoader("roster", "templates"),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    """Add config flags shared by all subcommands."""
    parser.add_argument("--config", type=str, help="Path to YAML config file")
    parser.add_argument(
        "--registry-file", type=str, dest="registry_file",
        help="Shared registry file (default: per-OS public location)",
    )
    parser.add_argument(
        "--lock-file", type=str, dest="lock_file",
        help="Advisory lock marker next to the registry file",
    )
    parser.add_argument(
        "--heartbeat-interval", type=float, dest="heartbeat_interval",
        help="Seconds between republishes of this instance (default: 5)",
    )
    parser.add_argument(
        "--stale-threshold", type=float, dest="stale_threshold",
        help="Seconds without a heartbeat before an instance is dead (default: 15)",
    )
    parser.add_argument(
        "--watch-backend", choices=["auto", "native", "polling"], dest="watch_backend",
        help="How to watch the registry for changes (default: auto)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )


def _build_config(args) -> RosterConfig:
    """Build a RosterConfig from a config file, environment and CLI overrides."""
    if args.config:
        config = load_config(args.config)
    else:
        config = RosterConfig()
    apply_env_overrides(config)
    merge_cli_args(config, args)
    if args.verbose:
        config.log_level = "DEBUG"
    config.validate()
    return config


def _configure_logging(config: RosterConfig) -> None:
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _format_instances(instances: List[PublicInstanceView], fmt: str) -> str:
    """Format a list of PublicInstanceView objects for output."""
    if fmt == "json":
        return json.dumps([i.to_dict() for i in instances], indent=2)
    template = _get_template_env().get_template("instances.txt.j2")
    return template.render(instances=instances).rstrip("\n")


def cmd_run(args) -> None:
    """Register this process and heartbeat until interrupted."""
    config = args.roster_config
    workspace = os.path.abspath(args.workspace) if args.workspace else None
    snapshot = SnapshotBuilder(
        InstanceIdentity.generate(),
        workspace_path=workspace,
        display_name=args.name,
        app_name=config.app_name,
    )
    client = RegistryClient(config, snapshot=snapshot)
    stop = threading.Event()

    def _on_change() -> None:
        count = len(client.get_all_instances())
        print(f"registry changed: {count} live instance(s)", flush=True)

    signal.signal(signal.SIGTERM, lambda signum, frame: stop.set())
    client.on_change(_on_change)
    client.register_current_instance()
    print(f"Registered {snapshot.display_name} (session {client.session_id})", flush=True)
    try:
        stop.wait()
    except KeyboardInterrupt:
        pass
    finally:
        client.cleanup()
        print("Unregistered.", file=sys.stderr)


def cmd_list(args) -> None:
    client = RegistryClient(args.roster_config)
    print(_format_instances(client.get_all_instances(), args.format))


def cmd_status(args) -> None:
    """Report the state of the shared files without modifying them."""
    config = args.roster_config
    store = RegistryStore(config.registry_file)
    raw = store.read()
    live = reap(raw, now_ms(), config.stale_threshold_ms)
    holder = LockCoordinator(config.lock_file).holder()

    print(f"Registry file: {config.registry_file} ({'present' if store.path.exists() else 'missing'})")
    print(f"Lock file:     {config.lock_file} ({f'held by pid {holder}' if holder else 'free'})")
    print(f"Entries:       {len(raw)} recorded, {len(live)} live")
    if store.corrupt_reads:
        print("Warning: registry file is corrupt and is being read as empty.")


def cmd_config(args) -> None:
    print(config_to_yaml(args.roster_config), end="")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="roster",
        description="Roster: track running instances through a shared registry file",
    )
    subparsers = parser.add_subparsers(dest="command")

    # run
    run_parser = subparsers.add_parser(
        "run", help="Register this process and heartbeat until interrupted",
    )
    _add_common_args(run_parser)
    run_parser.add_argument("--workspace", type=str, help="Workspace path to publish")
    run_parser.add_argument("--name", type=str, help="Display name (default: from workspace)")
    run_parser.set_defaults(func=cmd_run)

    # list
    list_parser = subparsers.add_parser("list", help="List live instances")
    _add_common_args(list_parser)
    list_parser.add_argument(
        "--format", choices=["text", "json"], default="text",
        help="Output format (default: text)",
    )
    list_parser.set_defaults(func=cmd_list)

    # status
    status_parser = subparsers.add_parser("status", help="Inspect the registry and lock files")
    _add_common_args(status_parser)
    status_parser.set_defaults(func=cmd_status)

    # config
    config_parser = subparsers.add_parser("config", help="Print the effective configuration")
    _add_common_args(config_parser)
    config_parser.set_defaults(func=cmd_config)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        args.roster_config = _build_config(args)
    except (OSError, TypeError, ValueError, yaml.YAMLError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    _configure_logging(args.roster_config)

    args.func(args)


if __name__ == "__main__":
    main()
