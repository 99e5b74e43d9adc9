"""Core boot image lifecycle logic for kernctl."""
