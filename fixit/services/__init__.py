"""Domain services: each function is one unit of work and commits its own transaction."""
