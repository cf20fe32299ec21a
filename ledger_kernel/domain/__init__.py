"""Pure domain layer: clock, enumerations, unit conversion, pricing, workflows. Zero I/O."""
