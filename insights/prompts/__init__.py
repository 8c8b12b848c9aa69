from .analysis_prompts import PromptRegistry, get_prompt_registry

__all__ = ["PromptRegistry", "get_prompt_registry"]
