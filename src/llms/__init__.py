from .llm import AIInvoker, ChatModelInvoker, get_ai_invoker, get_llm_by_type

__all__ = ["AIInvoker", "ChatModelInvoker", "get_ai_invoker", "get_llm_by_type"]
