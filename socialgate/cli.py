"""Command-line interface for socialgate configuration management."""

from __future__ import annotations

import argparse
import json
import os
import sys

from pathlib import Path


def main(argv: list[str] | None = None) -> int:
    """Run the main CLI entry point.

    Returns
    -------
    int
        Exit code.
    """
    parser = argparse.ArgumentParser(
        prog="socialgate",
        description="socialgate configuration and provider tools",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Show or export configuration",
    )
    config_group = config_parser.add_mutually_exclusive_group()
    config_group.add_argument(
        "--show",
        action="store_true",
        help="Show current configuration",
    )
    config_group.add_argument(
        "--toml",
        action="store_true",
        help="Export configuration as TOML",
    )
    config_group.add_argument(
        "--env",
        action="store_true",
        help="Export configuration as environment variables",
    )
    config_group.add_argument(
        "--sources",
        action="store_true",
        help="Show configuration file sources",
    )
    config_parser.add_argument(
        "--output",
        "-o",
        type=str,
        help="Output file path (default: stdout)",
    )

    # init command
    init_parser = subparsers.add_parser(
        "init",
        help="Initialize a socialgate.toml configuration file",
    )
    init_parser.add_argument(
        "--force",
        "-f",
        action="store_true",
        help="Overwrite existing configuration file",
    )
    init_parser.add_argument(
        "--path",
        "-p",
        type=str,
        default="socialgate.toml",
        help="Path for configuration file (default: socialgate.toml)",
    )

    # providers command
    providers_parser = subparsers.add_parser(
        "providers",
        help="Show the configuration status of every provider",
    )
    providers_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the status as JSON",
    )

    args = parser.parse_args(argv)

    if args.command == "config":
        return handle_config(args)
    if args.command == "init":
        return handle_init(args)
    if args.command == "providers":
        return handle_providers(args)

    parser.print_help()
    return 0


def handle_config(args: argparse.Namespace) -> int:
    """Handle the config command.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments.

    Returns
    -------
    int
        Exit code.
    """
    from .config import SocialGateSettings

    if args.sources:
        return show_config_sources()

    settings = SocialGateSettings()
    if args.toml:
        output = settings.to_toml()
    elif args.env:
        output = settings.to_env()
    else:
        output = settings.show()

    if args.output:
        Path(args.output).write_text(output, encoding="utf-8")
        print(f"Configuration written to {args.output}")
    else:
        print(output)

    return 0


def handle_init(args: argparse.Namespace) -> int:
    """Handle the init command.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments.

    Returns
    -------
    int
        Exit code.
    """
    from .config import SocialGateSettings

    path = Path(args.path)
    if path.exists() and not args.force:
        print(f"Error: {path} already exists. Use --force to overwrite.", file=sys.stderr)
        return 1

    header = """# socialgate Configuration File
#
# Environment variables can override any setting:
#   SOCIALGATE__PROVIDERS__GOOGLE__CLIENT_ID="..."
#   SOCIALGATE__PROVIDERS__GOOGLE__ENABLED=true
#   SOCIALGATE__SESSION__LIFETIME=480
#   SOCIALGATE__FLOW__HOME_PATH="/app"
#
# Use nested keys with __ (double underscore) delimiter.
# Redacted values ("********") must be replaced before use.
"""

    path.write_text(header + SocialGateSettings().to_toml(), encoding="utf-8")
    print(f"Created {path}")
    return 0


def handle_providers(args: argparse.Namespace) -> int:
    """Handle the providers command.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments.

    Returns
    -------
    int
        Exit code.
    """
    from .auth.registry import create_registry_from_settings
    from .config import SocialGateSettings
    from .state.memory import MemoryUserDirectory

    registry = create_registry_from_settings(SocialGateSettings(), directory=MemoryUserDirectory())
    status = registry.get_provider_status()

    if args.json:
        print(json.dumps(status, indent=2))
        return 0

    print(f"{'Provider':<12} {'Display':<12} {'Configured':<12} {'Enabled':<10} Required")
    print("-" * 72)
    for name, info in status.items():
        configured = "yes" if info["configured"] else "no"
        enabled = "yes" if info["enabled"] else "no"
        required = ", ".join(info["required_config"])
        print(f"{name:<12} {info['display_name']:<12} {configured:<12} {enabled:<10} {required}")
    return 0


def show_config_sources() -> int:
    """Show configuration file sources and their status.

    Returns
    -------
    int
        Exit code.
    """
    sources = [
        ("Built-in defaults", ""),
        ("pyproject.toml [tool.socialgate]", "pyproject.toml"),
        ("./socialgate.toml", "socialgate.toml"),
        ("~/.config/socialgate/config.toml", "~/.config/socialgate/config.toml"),
        ("$SOCIALGATE_CONFIG_FILE", os.environ.get("SOCIALGATE_CONFIG_FILE", "")),
        ("Environment variables", ""),
    ]

    print("Configuration Sources (in order of precedence):\n")
    print(f"{'Source':<40} {'Status':<15} {'Path'}")
    print("-" * 80)

    for name, path_str in sources:
        if name == "Built-in defaults":
            status, path_display = "✓ Active", ""
        elif name == "Environment variables":
            env_vars = sorted(k for k in os.environ if k.startswith("SOCIALGATE_"))
            if env_vars:
                status = f"✓ {len(env_vars)} vars"
                path_display = ", ".join(env_vars[:3])
                if len(env_vars) > 3:
                    path_display += "..."
            else:
                status, path_display = "✗ No vars", ""
        elif not path_str:
            status, path_display = "✗ Not set", ""
        else:
            path = Path(path_str).expanduser()
            status = "✓ Found" if path.exists() else "✗ Not found"
            path_display = str(path)

        print(f"{name:<40} {status:<15} {path_display}")

    print("\nNote: Later sources override earlier ones.")
    return 0
