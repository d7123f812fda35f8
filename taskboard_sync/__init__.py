"""Task store, quick-add resolution and board synchronization for a task client."""
