"""
RouteFlow - A block-based workflow execution engine with dynamic routing.

Run graphs of typed blocks, let router blocks pick a single live path,
and manage versioned deployments with exactly one active snapshot.
"""

__version__ = "1.0.0"
