from modelci.huggingface.service import HuggingfaceService

__all__ = ["HuggingfaceService"]
