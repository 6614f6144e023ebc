"""Core components: providers, storage, extraction and chunking."""
