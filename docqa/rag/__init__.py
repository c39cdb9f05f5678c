"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Source reading and text normalization
- Paragraph-aware chunking with overlap
- Embedding generation (local or remote backends)
- SQLite + FAISS knowledge storage
- Semantic retrieval and context assembly
- Answer composition and escalation
"""
