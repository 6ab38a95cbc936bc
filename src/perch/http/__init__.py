"""HTTP primitives: search params and plain responses."""
