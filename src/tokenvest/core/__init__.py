"""Core utilities: constants, clocks, errors, configuration, logging, storage."""
