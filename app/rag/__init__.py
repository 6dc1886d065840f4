"""Semantic indexing and retrieval-augmented answers for blog content.

This package contains modules for:
- HTML-to-text normalization
- Embedding generation
- FAISS vector collection
- Index sync with the blog lifecycle
- Retrieval and answer synthesis
"""
