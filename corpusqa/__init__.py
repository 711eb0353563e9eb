"""corpusqa - answer questions from an ingested document corpus."""

__version__ = "0.3.0"
__logo__ = "📚"
