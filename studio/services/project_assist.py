"""Project helpers outside the chat loop: prompt enhancement, naming and export."""

import io
import re
import zipfile
from typing import Any, Protocol

from studio.clients.anthropic import get_anthropic_client
from studio.services.file_store import FileStore, get_file_store
from studio.services.model_provider import ModelProviderError
from studio.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_PROJECT_TITLE = "New Project"
MAX_TITLE_LENGTH = 50

ENHANCE_SYSTEM_PROMPT = """You are an expert at refining prompts for AI-powered development tools.

Your task: Enhance the user's prompt to be:
1. Clear and specific about what needs to be built
2. Include relevant technical details
3. Structured and actionable
4. Comprehensive but concise (under 200 words)

Guidelines:
- Preserve the user's original intent
- Add technical context where appropriate
- Specify expected behavior and features
- DO NOT change the core request
- Return ONLY the enhanced prompt in PLAIN TEXT
- DO NOT use markdown formatting (**, *, lists, etc.)
- Write in clear, natural sentences without special formatting"""

NAME_PROMPT = """Generate a concise 2-3 word product title for this project idea. \
Return ONLY the title with no quotes, punctuation, or extra text.

Project idea: {idea}

Examples of good titles:
- "Task Manager Pro"
- "Weather Dashboard"
- "Recipe Finder"
- "Fitness Tracker"

Title:"""


class ProjectNotFoundError(LookupError):
    """The project has nothing to export."""


class CompletionProvider(Protocol):
    """Single-prompt text completion."""

    async def complete(self, prompt: str, system_prompt: str | None = None, **kwargs: Any) -> str: ...


def clean_title(raw: str) -> str:
    """Strip quotes, trailing punctuation and line breaks from a generated title."""
    title = re.sub(r"^[\"'\s]+|[\"'\s]+$", "", raw)
    title = re.sub(r"[.?!]+$", "", title)
    title = title.replace("\n", " ").strip()
    if not title:
        return DEFAULT_PROJECT_TITLE
    return title[:MAX_TITLE_LENGTH].strip()


class ProjectAssistService:
    """Prompt enhancement, project naming and ZIP export."""

    def __init__(self, provider: CompletionProvider, file_store: FileStore | None = None):
        self.provider = provider
        self.file_store = file_store or get_file_store()
        self._titles: dict[str, str] = {}

    async def enhance_prompt(
        self, prompt: str, project_summary: str | None = None, is_first_message: bool = False
    ) -> str:
        """Rewrite a user prompt so it is specific and actionable.

        Raises:
            ValueError: If the prompt is blank
            ModelProviderError: If the model fails or returns nothing
        """
        if not prompt.strip():
            raise ValueError("Prompt is required")

        if is_first_message:
            user_prompt = (
                f'Enhance this prompt for building a new project:\n\nOriginal: "{prompt}"\n\n'
                "Make it clear, specific, and actionable."
            )
        else:
            user_prompt = (
                "Enhance this prompt for an existing project:\n\n"
                f"Project Context: {project_summary or 'No context available'}\n\n"
                f'Original: "{prompt}"\n\n'
                "Make it clear how this relates to the project and what specific changes are needed."
            )

        enhanced = await self.provider.complete(user_prompt, ENHANCE_SYSTEM_PROMPT, temperature=0.7, max_tokens=500)
        if not enhanced.strip():
            raise ModelProviderError("No enhanced prompt returned", recoverable=True)
        return enhanced.strip()

    async def generate_name(self, project_id: str, idea: str) -> str:
        """Generate a short title for a project idea and remember it for the project.

        Raises:
            ValueError: If the idea is blank
            ModelProviderError: If the model call fails
        """
        if not idea.strip():
            raise ValueError("Idea is required")

        logger.info(f"Generating title for project {project_id} with idea: {idea[:100]}")
        raw_title = await self.provider.complete(NAME_PROMPT.format(idea=idea.strip()), temperature=0.3, max_tokens=20)
        title = clean_title(raw_title)

        self._titles[project_id] = title
        logger.info(f'Generated title "{title}" for project {project_id}')
        return title

    def get_title(self, project_id: str) -> str | None:
        return self._titles.get(project_id)

    async def export_project(self, project_id: str) -> tuple[str, bytes]:
        """Build a ZIP archive of the project's files.

        Returns:
            Download file name and archive bytes

        Raises:
            ProjectNotFoundError: If the project has no files
        """
        files = await self.file_store.list_files(project_id)
        if not files:
            raise ProjectNotFoundError(f"Project not found: {project_id}")

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            for project_file in files:
                name = project_file.path.lstrip("/")
                if project_file.type == "folder":
                    archive.writestr(name + "/", "")
                else:
                    archive.writestr(name, project_file.content)

        title = self.get_title(project_id) or project_id
        # Content-Disposition must stay quotable ASCII
        file_name = (re.sub(r"[^A-Za-z0-9 ._-]", "", title).strip() or "project") + ".zip"
        data = buffer.getvalue()
        logger.info(f"Exported project {project_id} ({len(files)} files, {len(data)} bytes)")
        return file_name, data


_project_assist_service: ProjectAssistService | None = None


def get_project_assist_service() -> ProjectAssistService:
    """Get or create the project assist service backed by the Anthropic client."""
    global _project_assist_service
    if _project_assist_service is None:
        _project_assist_service = ProjectAssistService(get_anthropic_client())
    return _project_assist_service
