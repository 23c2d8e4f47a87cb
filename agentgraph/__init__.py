"""Agent workflow graph engine package.

Subpackages:
- engine: Validation, scheduling, execution, status derivation, cache/store coordination, audit
- nodes: Agent capability catalog
- agents: Inference providers (Claude CLI, mock)
"""
