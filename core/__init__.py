"""core/ -- Kernel: configuration, storage helpers, and shared errors."""
