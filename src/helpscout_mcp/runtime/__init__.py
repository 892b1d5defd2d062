"""Runtime: retry policies and observability."""
