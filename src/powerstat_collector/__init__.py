"""Per-core MSR residency, clock and temperature sampling."""
