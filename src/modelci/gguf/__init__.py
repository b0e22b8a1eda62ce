from modelci.gguf.service import GgufService

__all__ = ["GgufService"]
