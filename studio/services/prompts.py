"""System prompt construction for the application builder."""

from studio.models.conversation import Attachment
from studio.models.files import ProjectFile

BASE_PROMPT = """You are an expert full-stack developer helping the user build a working web application \
inside their project. You change the project only through the tools below.

## TOOLS
{tool_summary}

## WORKFLOW
1. Inspect the project with list_project_files or search_files before changing it.
2. Read a file with read_file before updating it, and always pass the complete new content to update_file.
3. Use create_file for new files. If a file already exists, use update_file instead.
4. Make one tool call per file and check each result before moving on.
5. If a tool reports an error, fix the arguments and try again or explain the problem to the user.
6. Finish with a short summary of what changed and a next step the user can take.

## FILE RULES
- Paths are absolute and start with a forward slash, e.g. /src/App.tsx
- Never use '..' in a path
- Create package.json first when starting a new project
- Prefer React with TypeScript and Tailwind CSS unless the user asks otherwise"""

PLAN_MODE_PROMPT = """
## PLAN MODE
Start your response with a 'Plan' section of 3-6 concise bullet points that explain the approach \
and name the files you will create or update. Do not call any tool before the plan is written."""

MENTIONED_FILE_LIMIT = 20_000  # Characters of content inlined per mentioned file


def build_system_prompt(
    tool_summary: str,
    plan_mode: bool = False,
    mentioned_files: list[ProjectFile] | None = None,
) -> str:
    """Build the system prompt for one chat turn.

    Args:
        tool_summary: One line per available tool
        plan_mode: Ask the model to write a plan before any tool call
        mentioned_files: Files the user referenced, inlined with their current content

    Returns:
        System prompt string
    """
    prompt = BASE_PROMPT.format(tool_summary=tool_summary)

    if plan_mode:
        prompt += "\n" + PLAN_MODE_PROMPT

    if mentioned_files:
        prompt += "\n\n## FILES MENTIONED BY THE USER"
        for file in mentioned_files:
            content = file.content
            if len(content) > MENTIONED_FILE_LIMIT:
                content = content[:MENTIONED_FILE_LIMIT] + "\n... (truncated, use read_file for the rest)"
            prompt += f"\n\n### {file.path} ({file.language})\n```\n{content}\n```"

    return prompt


def describe_attachments(attachments: list[Attachment]) -> str:
    """Render attachment notes to append to the latest user message."""
    if not attachments:
        return ""

    lines = ["Attached files:"]
    for attachment in attachments:
        details = [part for part in (attachment.mime_type, attachment.url) if part]
        suffix = f" ({', '.join(details)})" if details else ""
        lines.append(f"- {attachment.name}{suffix}")
        if attachment.content:
            lines.append(f"```\n{attachment.content}\n```")
    return "\n".join(lines)
