"""Document ingestion job lifecycle."""
