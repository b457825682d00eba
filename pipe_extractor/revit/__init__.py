"""
Revit-specific integrations for the pipe extractor.

Modules:
- safe_api: guarded API reads and element id helpers
- bbox_cache: host + link pipe bounding-box cache
- candidates: view-scoped candidate resolution
- spec_position: spec position parameter lookup chain
- tags: pipe tag resolution
- sheets: sheet discovery
"""
