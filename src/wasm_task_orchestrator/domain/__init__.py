"""
wasm-task-orchestrator — domain layer

File: src/wasm_task_orchestrator/domain/__init__.py
Last updated: 2026-10-16

Purpose
- Domain types shared across commands: Manifest, MountPoint, EntryPoint, the
  persisted mount mapping, and the guest path normalizer.

Functional requirements
- Domain objects must be serializable and immutable after load.

Non-functional requirements
- Keep the domain layer free of IO side effects.
"""
