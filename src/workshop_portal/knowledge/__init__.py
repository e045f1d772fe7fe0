"""Lexical knowledge retrieval over a static JSON collection."""

from workshop_portal.knowledge.store import (
    KnowledgeStore,
    build_excerpt,
    get_knowledge_store,
    tokenize,
)

__all__ = ["KnowledgeStore", "build_excerpt", "get_knowledge_store", "tokenize"]
