"""Order orchestration: pricing, local order cache and the primary backend path."""
