"""Pure domain layer: money arithmetic, occupancy, clocks and DTOs."""
