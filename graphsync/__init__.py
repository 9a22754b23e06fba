"""Mirror document front matter into Neo4j: sync queue and batched executors."""

__version__ = "0.1.0"
