"""Image construction: the staged pipeline, external tools and artifacts."""
