"""GRID — Composition model: patterns, instruments, arrangements."""
