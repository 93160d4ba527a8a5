"""Leaf tasks for the site pipeline live here.

Each module declares coroutine functions decorated with
`@devflow.task(name=...)`; `devflow.pipeline.discover_tasks` picks them up.
Keep shared helpers out of this package root.
"""
