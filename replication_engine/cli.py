"""
Command-line interface for the replication engine
"""
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import (
    MODEL_PROFILES, KEYED_PROVIDERS, ReplicationConfig, get_config, get_profile,
    print_current_config, set_config
)
from .exceptions import ConfigurationError, ReplicationError
from .providers import LMStudioBackend, build_backend
from .utils import estimate_tokens, format_file_size
from .workspace import Workspace


def create_parser() -> argparse.ArgumentParser:
    """Create command-line argument parser"""
    parser = argparse.ArgumentParser(
        description="Codebase Replication - remove a file from a codebase snapshot and regenerate it with an LLM",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Copy a project into the workspace and snapshot it
  replicate import ~/projects/my-app
  replicate parse

  # Remove one file (by path or by its number in `replicate files`)
  replicate remove src/index.js
  replicate remove 3

  # Regenerate it with a model profile
  replicate regenerate index_modified_codebase.txt --model gemini
  replicate regenerate 1 --model openrouter-phi4 --reasoning

  # Configuration management
  replicate config --show
        """
    )

    # Global options
    parser.add_argument('--home', help='Workspace root (defaults to REPLICATION_HOME or the current directory)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    import_parser = subparsers.add_parser('import', help='Copy a codebase into the workspace')
    import_parser.add_argument('source', help='Directory to copy')

    clear_parser = subparsers.add_parser('clear', help='Delete the local codebase copy')
    clear_parser.add_argument('--yes', '-y', action='store_true', help='Do not ask for confirmation')

    tree_parser = subparsers.add_parser('tree', help='Show the local codebase structure')
    tree_parser.add_argument('--depth', type=int, help='Number of levels to show')

    subparsers.add_parser('parse', help='Serialize the local codebase into a snapshot')
    subparsers.add_parser('files', help='List files in the parsed snapshot')

    remove_parser = subparsers.add_parser('remove', help='Remove a file from the parsed snapshot')
    remove_parser.add_argument('target', help='File path, or its number from `files`')

    subparsers.add_parser('removed', help='List removed-file records')

    subparsers.add_parser('models', help='List model profiles')
    subparsers.add_parser('status', help='Check the LM Studio server')

    regen_parser = subparsers.add_parser('regenerate', help='Regenerate a removed file')
    regen_parser.add_argument('record', help='Record file name or path, or its number from `removed`')
    regen_parser.add_argument('--model', '-m', default='local', choices=sorted(MODEL_PROFILES),
                              help='Model profile to use')
    regen_parser.add_argument('--temperature', type=float, help='Override sampling temperature')
    regen_parser.add_argument('--max-tokens', type=int, help='Override maximum output tokens')
    regen_parser.add_argument('--reasoning', action='store_true',
                              help='Keep reasoning output when the model returns it')

    config_parser = subparsers.add_parser('config', help='Configuration management')
    config_group = config_parser.add_mutually_exclusive_group(required=True)
    config_group.add_argument('--show', action='store_true', help='Show current configuration')
    config_group.add_argument('--json', action='store_true', help='Dump current configuration as JSON')
    config_group.add_argument('--validate', action='store_true', help='Validate current configuration')

    return parser


def _workspace() -> Workspace:
    config = get_config()
    return Workspace(config.home, config.skip_rules)


def _select(choice: str, options: List[str]) -> Optional[str]:
    """Resolve a 1-based number into an option; anything else is returned as given"""
    if choice.isdigit():
        index = int(choice)
        if 1 <= index <= len(options):
            return options[index - 1]
        return None
    return choice


def cmd_import(args: argparse.Namespace) -> int:
    """Execute import command"""
    try:
        workspace = _workspace()
        print(f"📂 Copying codebase from: {args.source}")
        count = workspace.import_codebase(Path(args.source))
        print(f"✅ Codebase copied successfully ({count:,} files)")
        return 0
    except ReplicationError as e:
        print(f"❌ Import failed: {e}")
        return 1
    except Exception as e:
        print(f"💥 Unexpected error: {e}")
        return 1


def cmd_clear(args: argparse.Namespace) -> int:
    """Execute clear command"""
    try:
        workspace = _workspace()
        if not args.yes:
            answer = input(f"⚠️ Delete {workspace.codebase_dir}? [y/N] ")
            if answer.strip().lower() not in ('y', 'yes'):
                print("❌ Clear cancelled")
                return 1

        if workspace.clear_codebase():
            print("✅ Codebase folder cleared successfully")
        else:
            print("ℹ️ Codebase folder does not exist")
        return 0
    except Exception as e:
        print(f"💥 Unexpected error: {e}")
        return 1


def cmd_tree(args: argparse.Namespace) -> int:
    """Execute tree command"""
    try:
        config = get_config()
        depth = args.depth if args.depth is not None else config.tree_depth
        lines = _workspace().codebase_tree(depth)
        print(f"🌳 Codebase structure ({depth} levels):")
        for line in lines:
            print(line)
        return 0
    except ReplicationError as e:
        print(f"❌ {e}")
        return 1
    except Exception as e:
        print(f"💥 Unexpected error: {e}")
        return 1


def cmd_parse(args: argparse.Namespace) -> int:
    """Execute parse command"""
    try:
        config = get_config()
        workspace = _workspace()
        result = workspace.parse_codebase()
        size = len(result.content.encode('utf-8'))

        print("✅ Parsing complete!")
        print(f"  Included Files: {result.included_count:,}")
        print(f"  Skipped Files: {len(result.skipped):,}")
        if result.unreadable:
            print(f"  Unreadable Files: {len(result.unreadable):,}")
            for item in result.unreadable:
                print(f"    - {item.path}: {item.reason}")
        print(f"  Output Size: {format_file_size(size)}")
        print(f"  Estimated Tokens: ~{estimate_tokens(result.content):,}")
        print(f"  Saved To: {workspace.snapshot_path}")

        if args.verbose and result.skipped:
            print("  Skipped:")
            for item in result.skipped:
                print(f"    - {item.path} ({item.reason})")

        if size > config.warning_size:
            print("⚠️ Warning: The output file is quite large. It may exceed the model's context window.")
        return 0
    except ReplicationError as e:
        print(f"❌ Parsing failed: {e}")
        return 1
    except Exception as e:
        print(f"💥 Unexpected error: {e}")
        return 1


def cmd_files(args: argparse.Namespace) -> int:
    """Execute files command"""
    try:
        files = _workspace().get_parsed_files()
        if files is None:
            print("❌ No parsed codebase found. Please parse a codebase first.")
            return 1

        print(f"📋 Parsed files ({len(files)}):")
        for i, path in enumerate(files, 1):
            print(f"  {i}. {path}")
        return 0
    except ReplicationError as e:
        print(f"❌ {e}")
        return 1
    except Exception as e:
        print(f"💥 Unexpected error: {e}")
        return 1


def cmd_remove(args: argparse.Namespace) -> int:
    """Execute remove command"""
    try:
        workspace = _workspace()
        target = args.target
        if target.isdigit():
            target = _select(target, workspace.get_parsed_files() or [])
            if target is None:
                print(f"❌ Invalid selection: {args.target}")
                return 1

        record_path = workspace.remove_file(target)
        print(f"✅ File removed: {target}")
        print(f"📄 Modified codebase saved to: {record_path}")
        return 0
    except ReplicationError as e:
        print(f"❌ Removal failed: {e}")
        return 1
    except Exception as e:
        print(f"💥 Unexpected error: {e}")
        return 1


def cmd_removed(args: argparse.Namespace) -> int:
    """Execute removed command"""
    try:
        entries = _workspace().list_removed_records()
        if not entries:
            print("ℹ️ No removed-file records found")
            return 0

        print(f"🗂️ Removed-file records ({len(entries)}):")
        for i, entry in enumerate(entries, 1):
            print(f"  {i}. {entry.file_path.name} -> {entry.label}")
        return 0
    except Exception as e:
        print(f"💥 Unexpected error: {e}")
        return 1


def cmd_models(args: argparse.Namespace) -> int:
    """Execute models command"""
    try:
        config = get_config()
        print("🤖 Available model profiles:")
        for key, profile in MODEL_PROFILES.items():
            env_name = KEYED_PROVIDERS.get(profile.provider_type)
            if env_name is None:
                availability = "✅ no key needed"
            elif config.provider_settings(profile.provider_type).has_credentials:
                availability = "✅ key configured"
            else:
                availability = f"❌ {env_name} not set"
            print(f"  {key:<18} {profile.display_name}  [{availability}]")
        return 0
    except Exception as e:
        print(f"💥 Unexpected error: {e}")
        return 1


def cmd_status(args: argparse.Namespace) -> int:
    """Execute status command"""
    try:
        config = get_config()
        backend = LMStudioBackend(config.provider_settings('local'), status_timeout=config.status_timeout)
        print(f"🔍 Checking LM Studio at {backend.settings.endpoint} ...")

        if not backend.check_server_status():
            print("❌ LM Studio server is not running or not reachable")
            return 1

        print("✅ LM Studio server is running")
        print(f"  Loaded Model: {backend.get_current_model()}")
        return 0
    except ReplicationError as e:
        print(f"❌ {e}")
        return 1
    except Exception as e:
        print(f"💥 Unexpected error: {e}")
        return 1


def _resolve_record(workspace: Workspace, choice: str) -> Optional[Path]:
    if choice.isdigit():
        entries = workspace.list_removed_records()
        selected = _select(choice, [str(e.file_path) for e in entries])
        return Path(selected) if selected else None
    return Path(choice)


def cmd_regenerate(args: argparse.Namespace) -> int:
    """Execute regenerate command"""
    try:
        config = get_config()
        workspace = _workspace()
        profile = get_profile(args.model)

        env_name = KEYED_PROVIDERS.get(profile.provider_type)
        if env_name and not config.provider_settings(profile.provider_type).has_credentials:
            raise ConfigurationError(f"{env_name} is not set. Cannot use {profile.display_name}.")

        record_path = _resolve_record(workspace, args.record)
        if record_path is None:
            print(f"❌ Invalid selection: {args.record}")
            return 1

        backend = build_backend(profile, config)
        if isinstance(backend, LMStudioBackend) and not backend.check_server_status():
            print("❌ LM Studio server is not running. Start it and load a model first.")
            return 1

        model_config = profile.defaults.merged(
            temperature=args.temperature,
            max_tokens=args.max_tokens,
            include_reasoning=True if args.reasoning else None,
        )

        outcome = workspace.orchestrator().regenerate(
            workspace.load_record(record_path), backend, profile, model_config
        )

        print("✅ File regenerated successfully")
        print(f"  Provider: {profile.display_name}")
        print(f"  Model: {outcome.model or '-'}")
        print(f"  Output: {outcome.output_path}")
        if outcome.reasoning_path:
            print(f"  Reasoning: {outcome.reasoning_path}")
        return 0
    except ReplicationError as e:
        print(f"❌ Regeneration failed: {e}")
        return 1
    except Exception as e:
        print(f"💥 Unexpected error: {e}")
        return 1


def cmd_config(args: argparse.Namespace) -> int:
    """Execute config command"""
    try:
        if args.show:
            print_current_config()
            return 0

        elif args.json:
            print(json.dumps(get_config().to_dict(), indent=2, default=str))
            return 0

        elif args.validate:
            config = get_config()
            issues = config.validate()
            if issues:
                print("❌ Configuration validation failed:")
                for issue in issues:
                    print(f"  - {issue}")
                return 1
            else:
                print("✅ Configuration is valid")
                missing = config.missing_api_keys()
                if missing:
                    print(f"ℹ️ Providers without API keys: {', '.join(missing)}")
                return 0

    except Exception as e:
        print(f"💥 Configuration error: {e}")
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point"""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    # Set up verbose logging if requested
    if args.verbose:
        logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')

    if args.home:
        config = ReplicationConfig.from_environment()
        config.home = Path(args.home).expanduser()
        set_config(config)

    # Route to command handlers
    command_handlers = {
        'import': cmd_import,
        'clear': cmd_clear,
        'tree': cmd_tree,
        'parse': cmd_parse,
        'files': cmd_files,
        'remove': cmd_remove,
        'removed': cmd_removed,
        'models': cmd_models,
        'status': cmd_status,
        'regenerate': cmd_regenerate,
        'config': cmd_config,
    }

    handler = command_handlers.get(args.command)
    if handler:
        return handler(args)
    else:
        print(f"❌ Unknown command: {args.command}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
