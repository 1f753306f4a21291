"""
vectorsync - Embedding synchronization for resource records

Keeps derived vector attributes consistent with the text attributes they
are computed from. A mutation on a record passes through a change-trigger
gate, a field extractor, one batched embedding call and a writer; the
resource's strategy decides whether that runs inline before commit,
deferred through a job queue, or only when triggered manually.

Key components:
- core/: Types, exceptions, and logging utilities
- pipeline/: Gate, extractor, writer and strategy dispatch
- providers/: Embedding model adapters (Ollama, OpenAI, hash)
- config/: YAML configuration and resource registry
- storage/: Record store and job queues
- jobs/, runners/: Deferred refresh jobs and the worker
- cli/: Manual backfill
"""

__version__ = "0.1.0"
