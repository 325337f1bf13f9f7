"""Domain enums, pricing stages and pure ticket rules."""
