"""Patch, idempotency and consistency core for generated project trees.

This package applies small, named edits to config and manifest files inside a
generated project exactly once per logical operation, keeps backups of every
mutated file, and audits the project for drift (the project doctor).
"""
