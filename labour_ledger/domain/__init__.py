"""Pure domain layer: money codec, split rules, DTOs, clocks. No I/O."""
