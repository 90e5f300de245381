#!/usr/bin/env python3
"""
llamadeck CLI — drive a local inference service from the terminal.

    COMMAND         ALIASES         WHAT IT DOES
    -------         -------         ----------------------------------
    up              chat, repl      Auto-start the service and chat interactively
    status          ring            Show the service status
    models          list            List models the service can load
    health          ping            Run the service's model health check
    start           dial            Initialize with the stored config and start
    stop            hangup          Stop the service
    config          flash           Show, edit or reset the stored config
"""

import argparse
import asyncio
import json
import sys

import yaml

from llamadeck import __version__
from llamadeck.config import ConfigStore, apply_env_overrides
from llamadeck.context import LlamaDeckContext
from llamadeck.errors import LlamaDeckError
from llamadeck.main import setup_logging

REPL_HELP = """\
  /new            start a new conversation
  /list           list conversations
  /select N       switch to conversation N from /list
  /delete N       delete conversation N
  /clear          delete all conversations
  /status         show service status
  /dump FILE      write conversations to FILE as JSON
  /quit           leave (Ctrl-D works too)"""


def _context(args) -> LlamaDeckContext:
    store = ConfigStore(args.config)
    cfg = apply_env_overrides(store.load_config())
    setup_logging(cfg, verbose=args.verbose)
    return LlamaDeckContext(config_store=store, app_config=cfg)


def _print_status(ctx: LlamaDeckContext):
    s = ctx.controller.status
    mark = "●" if s.is_running else "○"
    print(f"  {mark} {'RUNNING' if s.is_running else 'STOPPED'}  ({ctx.controller.state.value})")
    print(f"  ├─ Model:    {s.model_name}")
    print(f"  ├─ Base URL: {s.base_url}")
    print(f"  └─ Port:     {s.port}")
    if ctx.controller.error:
        print(f"  ✗  {ctx.controller.error}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

async def _repl_command(ctx: LlamaDeckContext, line: str) -> bool:
    """Handle a /command. Returns False when the REPL should exit."""
    parts = line.split(maxsplit=1)
    cmd, arg = parts[0], (parts[1].strip() if len(parts) > 1 else "")
    convs = ctx.conversations.conversations

    if cmd in ("/quit", "/exit"):
        return False
    if cmd == "/new":
        conv = ctx.conversations.create()
        print(f"  ✓  New conversation {conv.id[:8]}")
    elif cmd == "/list":
        if not convs:
            print("  No conversations yet.")
        current = ctx.conversations.current
        for i, conv in enumerate(convs, 1):
            marker = "*" if current and conv.id == current.id else " "
            print(f"  {marker}[{i}] {conv.title} ({len(conv.messages)} msgs)")
    elif cmd in ("/select", "/delete"):
        try:
            index = int(arg)
            if index < 1:
                raise IndexError(index)
            conv = convs[index - 1]
        except (ValueError, IndexError):
            print(f"  ✗  No conversation '{arg}', see /list")
            return True
        if cmd == "/select":
            ctx.conversations.select(conv.id)
            for msg in conv.messages:
                print(f"  {msg.role.value}> {msg.content}")
        else:
            ctx.conversations.delete(conv.id)
            print(f"  ✓  Deleted '{conv.title}'")
    elif cmd == "/clear":
        ctx.conversations.clear_all()
        print("  ✓  Cleared all conversations")
    elif cmd == "/status":
        _print_status(ctx)
    elif cmd == "/dump":
        path = arg or "conversations_export.json"
        data = ctx.conversations.export()
        try:
            with open(path, "w") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
        except OSError as e:
            print(f"  ✗  Could not write {path}: {e}")
            return True
        print(f"  📦 Dumped {len(data)} conversations to {path}")
    else:
        print(REPL_HELP)
    return True


async def _up(args):
    async with _context(args) as ctx:
        print(f"  llamadeck {__version__} → {ctx.app_config.service_url}")
        await ctx.startup(auto_start=not args.no_autostart)
        _print_status(ctx)
        print("  Type a message, or /help.")

        while True:
            try:
                line = await asyncio.to_thread(input, "you> ")
            except EOFError:
                print()
                break
            line = line.strip()
            if not line:
                continue
            if line.startswith("/"):
                if not await _repl_command(ctx, line):
                    break
                continue
            if not ctx.chat.can_send:
                print("  ✗  Service is not running — try /status")
                continue
            try:
                response = await ctx.chat.send_message(line)
            except LlamaDeckError as e:
                print(f"  ✗  {e}")
                continue
            print(f"assistant> {response.content}")


def cmd_up(args):
    """Auto-start the service and open an interactive chat."""
    try:
        asyncio.run(_up(args))
    except KeyboardInterrupt:
        print()


async def _one_shot(args, op):
    async with _context(args) as ctx:
        try:
            await op(ctx)
        except LlamaDeckError as e:
            print(f"  ✗  {e}")
            return 1
    return 0


def _run(args, op):
    sys.exit(asyncio.run(_one_shot(args, op)))


def cmd_status(args):
    """Show the service status."""
    async def op(ctx):
        await ctx.controller.refresh_status()
        _print_status(ctx)
    _run(args, op)


def cmd_models(args):
    """List models the service can load."""
    async def op(ctx):
        models = await ctx.controller.list_models()
        configured = ctx.app_config.default_service_config.model_name
        if not models:
            print("  No models found.")
        for model in models:
            mark = "*" if model == configured else " "
            print(f"  {mark} {model}")
    _run(args, op)


def cmd_health(args):
    """Run the service's model health check."""
    async def op(ctx):
        print(f"  ✓  {await ctx.controller.health_check()}")
    _run(args, op)


def cmd_start(args):
    """Initialize with the stored config and start, without retries."""
    async def op(ctx):
        await ctx.controller.initialize(ctx.app_config.default_service_config)
        print(f"  ✓  {await ctx.controller.start()}")
        _print_status(ctx)
    _run(args, op)


def cmd_stop(args):
    """Stop the service."""
    async def op(ctx):
        print(f"  ✓  {await ctx.controller.stop()}")
    _run(args, op)


def cmd_config(args):
    """Show, edit or reset the stored config."""
    store = ConfigStore(args.config)
    if args.reset:
        cfg = store.reset_config()
        print(f"  ✓  Reset {store.path}")
    elif args.model or args.no_autostart is not None:
        cfg = store.load_config()
        if args.model:
            cfg.default_service_config.model_name = args.model
        if args.no_autostart is not None:
            cfg.auto_start_enabled = not args.no_autostart
        problems = cfg.default_service_config.validate()
        if problems:
            print(f"  ✗  {'; '.join(problems)}")
            sys.exit(1)
        store.save_config(cfg)
        print(f"  ✓  Saved {store.path}")
    else:
        cfg = store.load_config()
        print(f"  # {store.path}")
    print(yaml.safe_dump(cfg.to_dict(), default_flow_style=False, sort_keys=False))


# ---------------------------------------------------------------------------
# Parser with aliases
# ---------------------------------------------------------------------------

def _add_command(subparsers, names, help_text, func, setup_fn=None):
    """Register a command under its name and aliases."""
    p = subparsers.add_parser(names[0], help=help_text, aliases=names[1:])
    p.set_defaults(func=func)
    if setup_fn:
        setup_fn(p)
    return p


def main():
    parser = argparse.ArgumentParser(
        prog="llamadeck",
        description="llamadeck — lifecycle and chat for a local inference service.",
        epilog="Run 'llamadeck <command> --help' for command-specific options.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version", "-V", action="version",
        version=f"llamadeck {__version__}",
    )
    parser.add_argument("--config", "-c", default=None, help="Config file (default: ~/.llamadeck/config.yaml)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", metavar="<command>")

    def setup_up(p):
        p.add_argument("--no-autostart", action="store_true", help="Don't try to start the service")

    _add_command(sub, ["up", "chat", "repl"],
                 "Auto-start the service and chat interactively", cmd_up, setup_up)
    _add_command(sub, ["status", "ring"], "Show the service status", cmd_status)
    _add_command(sub, ["models", "list"], "List models the service can load", cmd_models)
    _add_command(sub, ["health", "ping"], "Run the service's model health check", cmd_health)
    _add_command(sub, ["start", "dial"], "Initialize with the stored config and start", cmd_start)
    _add_command(sub, ["stop", "hangup"], "Stop the service", cmd_stop)

    def setup_config(p):
        p.add_argument("--reset", action="store_true", help="Reset to defaults")
        p.add_argument("--model", "-m", default=None, help="Set the default model name")
        p.add_argument("--autostart", dest="no_autostart", action="store_false", default=None,
                       help="Enable auto-start")
        p.add_argument("--no-autostart", dest="no_autostart", action="store_true", default=None,
                       help="Disable auto-start")

    _add_command(sub, ["config", "flash"],
                 "Show, edit or reset the stored config", cmd_config, setup_config)

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        return

    args.func(args)


if __name__ == "__main__":
    main()
