"""Task lifecycle engine.

Templates are turned into tasks by the factory, driven through simulated
execution ticks by the driver, and owned by the registry, which is the only
component that mutates task state.
"""
