"""Fixed prompt fragments the runtime injects around workflow templates."""

TAGGED_TOOL_PROTOCOL = """
# TOOL USE
You can call exactly one tool per message. To call a tool, write its name as an
XML-style tag with every parameter as a nested tag:

<tool_name>
<parameter_name>value</parameter_name>
</tool_name>

For example:

<tool_forge_fs_read>
<path>src/main.py</path>
</tool_forge_fs_read>

Write parameter values verbatim, without XML escaping. Always close the tool
tag. Text before the tag is fine; anything after the first tool call is ignored.
Wait for the <tool_result> before calling the next tool. When the task
is complete, answer without any tool tag.
""".strip()

NATIVE_TOOL_PROTOCOL = """
# TOOL USE
Call tools through the function-calling interface, one call per message. When
the task is complete, answer without calling a tool.
""".strip()

NO_TOOLS = "No tools are available. Answer directly."

PLAN_MODE_NOTICE = """
# PLAN MODE
The session is in PLAN mode. Only read-only tools are available: investigate,
then describe the changes you would make. Do not attempt to modify files or
run commands.
""".strip()

INTERRUPTED_RESULT = "Tool call interrupted by the user."

APPROVAL_DENIED_RESULT = "The user declined to run this tool call."
