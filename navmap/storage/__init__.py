"""Key-value persistence and the records kept in it."""
