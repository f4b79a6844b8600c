"""
The `packaging` sub-package turns built archives into the distributable
binary pod.

This includes:
- Orchestrating the per-platform install, build and stage loop.
- Staging xcframeworks and pod assets into a single tree.
- Zipping the staged tree.
"""
