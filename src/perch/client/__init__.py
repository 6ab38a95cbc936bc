"""Client mirror of the render pipeline: payload parsing and hydration."""
