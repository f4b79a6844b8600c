"""
The `manifest` sub-package reads source podspecs and produces, writes and
lints the binary podspec that replaces them.
"""
