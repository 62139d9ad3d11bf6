"""Infrastructure - repositories, clock, event sinks and the database event store."""
