"""Dependency-aware orchestration of external code agent CLIs.

Each task is one child process (codex, claude, gemini or opencode) whose
stdout is a stream of newline-delimited JSON events. The executor drives a
single process under a timeout and a shared cancellation token; the
scheduler runs a batch of tasks over a bounded pool of worker threads,
starting a task only after every task it depends on has finished, and
returns results in the order the batch was submitted.
"""
