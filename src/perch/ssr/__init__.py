"""Server-side rendering pipeline: serialize, assemble, orchestrate."""
