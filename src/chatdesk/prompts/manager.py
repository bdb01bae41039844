"""
Prompt template management system.

This module loads the packaged text templates, caches them and renders
them with ``{parameter}`` injection. It also assembles the system
instruction a generation is sent with.
"""

import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..core.models import SessionMode

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"


@dataclass
class PromptTemplate:
    """A loaded prompt template with metadata."""
    name: str
    content: str
    parameters: list[str]
    last_modified: datetime | None = None


class PromptManager:
    """
    Manages prompt templates with loading, caching, and parameter injection.

    Templates are ``<name>.txt`` files. Parameters use ``{name}``; a literal
    brace is written doubled, as with ``str.format``.
    """

    def __init__(self, templates_dir: str | Path | None = None, cache_ttl: int = 3600):
        """
        Initialize the prompt manager.

        Args:
            templates_dir: Directory containing prompt templates (defaults to the packaged ones)
            cache_ttl: Cache time-to-live in seconds (default: 1 hour)
        """
        self.templates_dir = Path(templates_dir) if templates_dir else TEMPLATES_DIR
        self.cache_ttl = cache_ttl
        self._template_cache: dict[str, PromptTemplate] = {}
        self._cache_timestamps: dict[str, datetime] = {}

        # {name} but not {{escaped}}
        self._param_pattern = re.compile(r"(?<!\{)\{([A-Za-z_][A-Za-z0-9_]*)\}(?!\})")

        logger.info(f"Initialized PromptManager with templates_dir: {self.templates_dir}")

    async def load_template(self, template_name: str) -> PromptTemplate:
        """
        Load a template by name with caching.

        Raises:
            FileNotFoundError: Template file not found
            ValueError: Template content is empty or unreadable
        """
        cached_template = self._get_cached_template(template_name)
        if cached_template:
            return cached_template

        template_path = self.templates_dir / f"{template_name}.txt"
        if not template_path.exists():
            raise FileNotFoundError(f"Template not found: {template_path}")

        try:
            content = template_path.read_text(encoding="utf-8")
        except OSError as e:
            raise ValueError(f"Failed to read template {template_name}: {e}") from e

        if not content.strip():
            raise ValueError(f"Template {template_name} is empty")

        template = PromptTemplate(
            name=template_name,
            content=content,
            parameters=sorted(set(self._param_pattern.findall(content))),
            last_modified=datetime.fromtimestamp(template_path.stat().st_mtime, tz=UTC),
        )
        self._template_cache[template_name] = template
        self._cache_timestamps[template_name] = datetime.now(UTC)

        logger.debug(f"Loaded template '{template_name}' with parameters: {template.parameters}")
        return template

    async def render_prompt(self, template_name: str, parameters: dict[str, Any]) -> str:
        """
        Render a template with parameter injection.

        Raises:
            FileNotFoundError: Template not found
            ValueError: Missing required parameters or invalid template
        """
        template = await self.load_template(template_name)

        missing_params = set(template.parameters) - set(parameters)
        if missing_params:
            raise ValueError(
                f"Missing required parameters for template '{template_name}': {missing_params}"
            )

        try:
            rendered = template.content.format(**{k: str(v) for k, v in parameters.items()})
        except (KeyError, IndexError, ValueError) as e:
            raise ValueError(f"Failed to render template '{template_name}': {e}") from e

        return rendered.strip()

    async def build_system_instruction(
        self,
        mode: SessionMode,
        user_name: str,
        base_instruction: str | None = None,
    ) -> str:
        """
        Compose the system instruction for a generation.

        Args:
            mode: Session mode selecting the behavioral preamble
            user_name: Name the preamble addresses the user by
            base_instruction: Agent instruction, or the configured base knowledge

        Returns:
            Base instruction (if any) followed by the mode preamble
        """
        preamble = await self.render_prompt(
            f"preamble_{mode.value}", {"user_name": user_name or "User"}
        )
        sections = [base_instruction.strip()] if base_instruction and base_instruction.strip() else []
        sections.append(preamble)
        return "\n\n".join(sections)

    async def list_templates(self) -> list[str]:
        """List available template names (without .txt extension)."""
        if not self.templates_dir.exists():
            return []
        return sorted(p.stem for p in self.templates_dir.glob("*.txt") if p.is_file())

    def clear_cache(self) -> None:
        """Clear the template cache."""
        self._template_cache.clear()
        self._cache_timestamps.clear()
        logger.info("Template cache cleared")

    def _get_cached_template(self, template_name: str) -> PromptTemplate | None:
        cache_timestamp = self._cache_timestamps.get(template_name)
        if cache_timestamp is None:
            return None

        age = (datetime.now(UTC) - cache_timestamp).total_seconds()
        if age > self.cache_ttl:
            self._template_cache.pop(template_name, None)
            self._cache_timestamps.pop(template_name, None)
            return None

        return self._template_cache.get(template_name)


_global_prompt_manager: PromptManager | None = None


def get_prompt_manager() -> PromptManager:
    """Get the global prompt manager instance."""
    global _global_prompt_manager
    if _global_prompt_manager is None:
        _global_prompt_manager = PromptManager()
    return _global_prompt_manager


def set_prompt_manager(manager: PromptManager) -> None:
    global _global_prompt_manager
    _global_prompt_manager = manager
