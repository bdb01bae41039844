"""
Prompt templates and system instruction assembly.
"""

from .manager import PromptManager, PromptTemplate, get_prompt_manager, set_prompt_manager

__all__ = ["PromptManager", "PromptTemplate", "get_prompt_manager", "set_prompt_manager"]
