"""Backup session orchestration.

- run_state: flag polled by the engine between items
- status: observer snapshots and coalesced delivery
- orchestrator: run lifecycle (start, pause, cancel, resume, dry run, reset)

Submodules are imported directly; engines depend on ``run_state`` and
the orchestrator depends on engines.
"""
