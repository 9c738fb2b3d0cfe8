"""Test suite for the FormSpec validation engine.

This package contains tests for:
- Path parsing, formatting, binding and reference resolution
- Condition parsing (mapping and compact string forms) and loose comparison
- Built-in rules and the rule registry
- Spec model construction and its construction-time errors
- Evaluator traversal, conditional gating and cross-field references
- Result assembly and message resolution
- FormValidator orchestration and the conformance corpus adapter
"""
