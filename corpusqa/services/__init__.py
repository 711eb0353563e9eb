"""Service layer: ingestion, retrieval and the bootstrap that wires them."""
