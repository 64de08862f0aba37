"""Loading, aggregation and batch orchestration services."""
