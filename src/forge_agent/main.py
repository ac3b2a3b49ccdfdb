"""Main entry point for the forge CLI.

Handles workflow resolution, provider selection, tool configuration,
and the interactive loop.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from .clients.factory import create_client
from .config import get_settings
from .core.tool_executor import ToolExecutor
from .eventlog import EventLog
from .exceptions import ConfigError, ProviderError
from .logging import setup_logging
from .orchestrator import Orchestrator
from .runtime import AgentInstance
from .tools import CommandRunner, PathValidator, get_default_tools
from .types import InstanceKey, ToolCall, TurnOutcome
from .workflow import WorkflowResolver

EXIT_COMMANDS = ("/exit", "exit", "quit")

HELP_TEXT = """Commands:
  /new      start a new conversation
  /info     show session information
  /models   list the provider's models
  /dump     save conversations to a JSON file
  /act      allow every tool (default)
  /plan     read-only tools only
  /exit     quit"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="forge", description="Multi-agent coding assistant")
    parser.add_argument(
        "-w", "--workflow",
        help="Workflow file to load standalone (skips the forge.yaml merge)"
    )
    parser.add_argument(
        "-r", "--restricted",
        action="store_true",
        help="Run shell commands in restricted mode"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (also settable via FORGE_LOG_LEVEL env var)"
    )
    parser.add_argument(
        "--approve",
        action="store_true",
        help="Ask before running tools that write, remove or execute"
    )
    parser.add_argument(
        "--max-dispatch-depth",
        type=int,
        help="Maximum depth of agent-triggered event dispatch"
    )
    parser.add_argument(
        "--custom-instructions",
        help="File whose contents are added to every agent's instructions"
    )
    parser.add_argument(
        "--learnings",
        help="File of lessons from earlier sessions, shown to templates as {learnings}"
    )
    return parser


def read_option_file(path: str | None, label: str) -> str | None:
    """Read a file named on the command line; exit with an error if it is unreadable."""
    if not path:
        return None
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as e:
        print(f"Error: cannot read {label}: {e}")
        sys.exit(1)


async def ask_approval(instance: AgentInstance, call: ToolCall, message: str) -> bool:
    """Prompt the user before a confirmable tool runs."""
    try:
        answer = await asyncio.to_thread(input, f"\n[{instance.agent_id}] {message} (y/n): ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def print_outcome(key: InstanceKey, outcome: TurnOutcome) -> None:
    if outcome.interrupted:
        print(f"\n[{key.agent_id}] interrupted.")
    elif outcome.is_failed:
        print(f"\n[{key.agent_id}] failed: {outcome.error}")
    elif outcome.content:
        print(f"\n[{key.agent_id}]: {outcome.content}")


async def wait_for_turns(orchestrator: Orchestrator) -> None:
    """Wait for the session to go idle; Ctrl-C interrupts the foreground turn."""
    while True:
        try:
            await orchestrator.wait_idle()
            return
        except asyncio.CancelledError:
            asyncio.current_task().uncancel()
            if not orchestrator.interrupt():
                return


async def print_models(orchestrator: Orchestrator) -> None:
    try:
        models = await orchestrator.models()
    except ProviderError as e:
        print(f"Could not list models: {e}")
        return
    for name in models:
        print(f"  {name}")


def print_info(orchestrator: Orchestrator) -> None:
    info = orchestrator.info()
    env = info["environment"]
    print(f"OS:        {env['os']}")
    print(f"CWD:       {env['cwd']}")
    print(f"Shell:     {env['shell']}")
    print(f"Provider:  {info['provider']}")
    print(f"Model:     {info['model']}")
    print(f"Mode:      {info['mode']}")
    print(f"Agents:    {', '.join(info['agents'])}")
    for instance in info["instances"]:
        print(f"  {instance['key']}: {instance['status']} ({instance['messages']} messages)")


def run_repl(runner: asyncio.Runner, orchestrator: Orchestrator) -> None:
    """Run the interactive REPL loop.

    Args:
        runner: Event loop runner shared by every call, so agent tasks
            survive between prompts
        orchestrator: The session orchestrator
    """
    print("Forge initialized. Type /exit to quit, /help for commands.")
    print("-" * 50)
    started = False

    while True:
        try:
            user_input = input(f"{orchestrator.mode.mode.value} > ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break

        if not user_input:
            continue
        command = user_input.lower()

        if command in EXIT_COMMANDS:
            print("Goodbye!")
            break
        if command == "/help":
            print(HELP_TEXT)
            continue
        if command == "/new":
            runner.run(orchestrator.reset())
            started = False
            print("Started a new conversation.")
            continue
        if command == "/info":
            print_info(orchestrator)
            continue
        if command == "/models":
            runner.run(print_models(orchestrator))
            continue
        if command == "/dump":
            path = orchestrator.dump()
            print(f"Conversation saved to {path}")
            continue
        mode = orchestrator.handle_command(command)
        if mode is not None:
            print(f"Switched to {mode.value} mode.")
            continue

        event_name = "user_task_update" if started else "user_task_init"

        async def submit() -> None:
            if orchestrator.publish(event_name, user_input):
                await wait_for_turns(orchestrator)
            else:
                print(f"No agent handles '{event_name}'.")

        runner.run(submit())
        started = True


def main():
    """Main entry point for the forge CLI."""
    args = build_parser().parse_args()

    # setup logging early
    setup_logging(args.log_level)
    settings = get_settings()
    if args.approve:
        settings = settings.model_copy(update={"require_approval": True})

    cwd = Path.cwd()
    try:
        workflow = WorkflowResolver().resolve(args.workflow, cwd=cwd)
        client = create_client(settings)
    except ConfigError as e:
        print(f"Error: {e}")
        sys.exit(1)

    custom_instructions = read_option_file(args.custom_instructions, "custom instructions")
    learnings = read_option_file(args.learnings or settings.learnings_file, "learnings")

    validator = PathValidator([cwd])
    runner = CommandRunner(restricted=args.restricted, cwd=cwd)
    executor = ToolExecutor(get_default_tools(validator, runner), timeout=settings.tool_timeout)
    event_log = EventLog(settings.event_log) if settings.event_log else None

    print(f"Using provider: {client.provider_name}")
    print(f"Using model: {client.model}")

    orchestrator = Orchestrator(
        workflow,
        client,
        executor,
        settings,
        custom_instructions=custom_instructions,
        learnings=learnings or "",
        approval_callback=ask_approval,
        on_outcome=print_outcome,
        event_log=event_log,
        max_dispatch_depth=args.max_dispatch_depth,
    )

    with asyncio.Runner() as loop_runner:
        try:
            run_repl(loop_runner, orchestrator)
        except KeyboardInterrupt:
            print("\nGoodbye!")
        finally:
            loop_runner.run(orchestrator.shutdown())


if __name__ == "__main__":
    main()
