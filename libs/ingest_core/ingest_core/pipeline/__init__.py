from ingest_core.pipeline.push import PushPipeline, can_push, extract_primary_pdf

__all__ = ["PushPipeline", "can_push", "extract_primary_pdf"]
