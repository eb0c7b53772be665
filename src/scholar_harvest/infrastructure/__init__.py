"""
Infrastructure Layer - External Systems Integration

Contains:
- http: network gateway for arbitrary web pages
- sources: search providers (Semantic Scholar, Google Scholar)
- llm: LLM collaborator adapters
- pdf: PDF text extraction
- persistence: file-backed store
"""
