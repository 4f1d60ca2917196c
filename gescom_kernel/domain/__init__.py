"""Pure domain layer: document lifecycle, tax variants, DTOs, clock, validation."""
