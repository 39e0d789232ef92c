"""Query engine over the aggregated item store."""
