"""Knowledge ingestion pipeline."""

from corpusqa.services.knowledge_pipeline.ingestion import IngestionPipeline, build_records

__all__ = ["IngestionPipeline", "build_records"]
