"""Gemini File Search MCP server: resilient document upload and retrieval."""
