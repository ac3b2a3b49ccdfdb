import asyncio
from pathlib import Path

from dotenv import load_dotenv

# Import the necessary components
from forge_agent import Orchestrator
from forge_agent.clients import create_client
from forge_agent.config import get_settings
from forge_agent.core import ToolExecutor
from forge_agent.tools import PathValidator, get_default_tools
from forge_agent.workflow import build_workflow

# Load environment variables (API keys)
load_dotenv()


# A two-agent topology: the engineer hands its summary to a reviewer
# through a custom event.
WORKFLOW = {
    "agents": [
        {
            "id": "engineer",
            "tools": ["fs_read", "fs_list", "fs_search", "think", "event_dispatch"],
            "subscribe": ["user_task_init"],
            "system_prompt": "engineer",
        },
        {
            "id": "reviewer",
            "ephemeral": True,
            "subscribe": ["review_request"],
            "user_prompt": "review",
        },
    ],
    "templates": {
        "engineer": (
            "You are a careful engineer working in {env.cwd} on {env.os}.\n"
            "{tool_information}\n"
            "When you are done, dispatch a 'review_request' event with a summary of your findings."
        ),
        "review": "Review this summary and list anything that looks wrong:\n{event.value}",
    },
}


def print_outcome(key, outcome):
    if outcome.is_failed:
        print(f"[{key}] failed: {outcome.error}")
    else:
        print(f"[{key}] {outcome.content}")


async def run(question: str):
    # 1. Initialize the LLM client from whichever API key is set
    settings = get_settings()
    client = create_client(settings)

    # 2. Define the tools the agents may use, rooted at the current directory
    validator = PathValidator([Path.cwd()])
    executor = ToolExecutor(get_default_tools(validator), timeout=settings.tool_timeout)

    # 3. Build the orchestrator from an in-memory workflow
    orchestrator = Orchestrator(build_workflow(WORKFLOW), client, executor, settings, on_outcome=print_outcome)

    # 4. Publish the task and wait for every agent to finish
    try:
        orchestrator.publish("user_task_init", question)
        await orchestrator.wait_idle()
    finally:
        await orchestrator.shutdown()


def main():
    print("Orchestrator initialized. Asking a question...")
    asyncio.run(run("Summarize what the Python files in this directory do."))


if __name__ == "__main__":
    main()
