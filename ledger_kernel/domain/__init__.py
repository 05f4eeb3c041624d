"""Pure domain values: clock, DTOs, permissions. Zero I/O."""
