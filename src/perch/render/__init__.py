"""Render engine and the per-render extractors that observe it.

Everything instantiated here belongs to a single render pass: the style
sheet, the chunk extractor, the head collector, and the render scope
that hands them to templates.
"""
