"""Summarization API — provider wire formats and the background pipeline."""
from pawnmem.api.summarizer import SummarizationPipeline

__all__ = ["SummarizationPipeline"]
