"""Order orchestration and ERP integration services."""
