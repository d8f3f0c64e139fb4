"""Click commands for vdb-kind."""
