"""LLM integration module for AI-assisted features."""

from app.llm.service import LLMService, extract_json_object, get_llm_service

__all__ = ["LLMService", "extract_json_object", "get_llm_service"]
